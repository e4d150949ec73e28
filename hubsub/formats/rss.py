from hubsub.errors import MalformedEntry
from hubsub.formats.common import (
    CONTENT_NS, DC_NS, RDF_NS, RSS_NAMESPACES, RSS1_NS, RSS09_NS,
    NormalizedFeedEntry, Normalized,
    child, first_child, first_timestamp, parse_rfc3339, parse_rfc822,
    qname, self_link, text_of,
)
from hubsub.sanitizer import sanitize


def _channel(document):
    return first_child(document, RSS_NAMESPACES, "channel")


def _items(document):
    # RSS 0.9x/2.0 nest items in the channel, RSS 0.9/1.0 (RDF) place them beside it
    items = []
    channel = _channel(document)
    if channel is not None:
        items.extend(channel.findall("item"))
    items.extend(document.findall(qname(RSS1_NS, "item")))
    items.extend(document.findall(qname(RSS09_NS, "item")))
    return items


def _item_topic(item):
    topic = self_link(item)
    if topic:
        return topic
    source = child(item, "", "source")
    if source is not None and (source.get("url") or "").strip():
        return source.get("url").strip()
    return None


def _guid(item):
    return text_of(child(item, "", "guid")) or (item.get(qname(RDF_NS, "about")) or "").strip()


def _body(item):
    encoded = child(item, CONTENT_NS, "encoded")
    if encoded is not None:
        return text_of(encoded)
    return text_of(first_child(item, RSS_NAMESPACES, "description"))


def normalize_entry(item, feed_topic=None, feed_author="", fallback_author=""):
    guid = _guid(item)

    topic = _item_topic(item) or feed_topic
    if not topic:
        raise MalformedEntry(f"rss item {guid!r} has no self link", guid=guid)

    author = (
        text_of(child(item, DC_NS, "creator"))
        or text_of(child(item, "", "author"))
        or feed_author
        or fallback_author
    )

    return NormalizedFeedEntry(
        topic=topic,
        guid=guid,
        author=author,
        title=sanitize(text_of(first_child(item, RSS_NAMESPACES, "title"))),
        content=sanitize(_body(item)),
        link=text_of(first_child(item, RSS_NAMESPACES, "link")),
        updated=first_timestamp(
            parse_rfc822(text_of(child(item, "", "pubDate"))),
            parse_rfc3339(text_of(child(item, DC_NS, "date"))),
        ),
    )


def normalize(document, fallback_author=""):
    result = Normalized()
    channel = _channel(document)
    feed_topic = self_link(channel)
    feed_author = text_of(child(channel, DC_NS, "creator"))

    for item in _items(document):
        try:
            result.entries.append(normalize_entry(item, feed_topic, feed_author, fallback_author))
        except MalformedEntry as e:
            result.rejected.append(e)
    return result


def topics(document):
    found = set()
    feed_topic = self_link(_channel(document))
    if feed_topic:
        found.add(feed_topic)
    for item in _items(document):
        topic = _item_topic(item)
        if topic:
            found.add(topic)
    return found
