import html

from hubsub.errors import MalformedEntry
from hubsub.formats.common import (
    ATOM_NS, DC_NS, NormalizedFeedEntry, Normalized,
    child, first_timestamp, inner_markup, local_name, parse_rfc3339,
    qname, self_link, text_of,
)
from hubsub.sanitizer import sanitize


def _entries(document):
    if local_name(document.tag) == "entry":
        return [document]
    return document.findall(qname(ATOM_NS, "entry"))


def _is_feed(document):
    return local_name(document.tag) == "feed"


def _author_name(elem):
    return text_of(child(child(elem, ATOM_NS, "author"), ATOM_NS, "name"))


def _feed_author(document):
    if not _is_feed(document):
        return ""
    return _author_name(document) or text_of(child(document, DC_NS, "creator"))


def text_construct(elem):
    """Markup carried by an Atom text construct (title, summary, content)."""
    if elem is None:
        return ""
    kind = (elem.get("type") or "text").strip().lower()
    if kind == "xhtml":
        return inner_markup(elem)
    text = "".join(elem.itertext())
    if kind in ("html", "text/html"):
        return text
    return html.escape(text, quote=False)


def _content(entry):
    contents = entry.findall(qname(ATOM_NS, "content"))
    for elem in contents:
        if (elem.get("type") or "").strip().lower() == "xhtml":
            return elem
    if contents:
        return contents[0]
    return child(entry, ATOM_NS, "summary")


def _alternate_link(entry):
    for link in entry.findall(qname(ATOM_NS, "link")):
        href = (link.get("href") or "").strip()
        if link.get("rel", "alternate") == "alternate" and href:
            return href
    return ""


def normalize_entry(entry, feed_topic=None, feed_author="", fallback_author=""):
    guid = text_of(child(entry, ATOM_NS, "id"))
    source = child(entry, ATOM_NS, "source")

    topic = self_link(source) or feed_topic
    if not topic:
        raise MalformedEntry(f"atom entry {guid!r} has no self link", guid=guid)

    author = _author_name(entry) or _author_name(source) or feed_author or fallback_author

    return NormalizedFeedEntry(
        topic=topic,
        guid=guid,
        author=author,
        title=sanitize(text_construct(child(entry, ATOM_NS, "title"))),
        content=sanitize(text_construct(_content(entry))),
        link=_alternate_link(entry),
        updated=first_timestamp(
            parse_rfc3339(text_of(child(entry, ATOM_NS, "updated"))),
            parse_rfc3339(text_of(child(entry, DC_NS, "date"))),
        ),
    )


def normalize(document, fallback_author=""):
    result = Normalized()
    feed_topic = self_link(document) if _is_feed(document) else None
    feed_author = _feed_author(document)

    for entry in _entries(document):
        try:
            result.entries.append(normalize_entry(entry, feed_topic, feed_author, fallback_author))
        except MalformedEntry as e:
            result.rejected.append(e)
    return result


def topics(document):
    found = set()
    if _is_feed(document) and self_link(document):
        found.add(self_link(document))
    for entry in _entries(document):
        topic = self_link(child(entry, ATOM_NS, "source"))
        if topic:
            found.add(topic)
    return found
