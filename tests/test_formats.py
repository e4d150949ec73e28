import time
import xml.etree.ElementTree as ET

import pytest

from hubsub import formats
from hubsub.errors import MalformedEntry, UnsupportedFeed
from hubsub.formats import FeedKind

MAY_FIRST_NOON = 1619870400  # 2021-05-01T12:00:00Z

ATOM_FEED = """\
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <title>Example</title>
  <link rel="self" href="http://example.com/feed.atom"/>
  <author><name>Feed Author</name></author>
  <entry>
    <id>urn:entry:1</id>
    <title type="html">&lt;b&gt;First&lt;/b&gt;</title>
    <link rel="edit" href="http://example.com/1/edit"/>
    <link rel="alternate" href="http://example.com/1"/>
    <updated>2021-05-01T12:00:00Z</updated>
    <content type="xhtml"><div xmlns="http://www.w3.org/1999/xhtml"><p>Hello <b>world</b></p><script>x()</script></div></content>
    <author><name>Entry Author</name></author>
  </entry>
  <entry>
    <id>urn:entry:2</id>
    <title>Plain &lt; title</title>
    <summary>summary text</summary>
  </entry>
  <entry>
    <id>urn:entry:3</id>
    <source>
      <link rel="self" href="http://other.example.com/feed"/>
      <author><name>Source Author</name></author>
    </source>
    <dc:date>2021-05-01T14:00:00+02:00</dc:date>
  </entry>
</feed>
"""

ATOM_ENTRY_WITHOUT_TOPIC = """\
<entry xmlns="http://www.w3.org/2005/Atom">
  <id>urn:lonely</id>
  <title>No topic</title>
</entry>
"""

RSS_FEED = """\
<rss version="2.0"
     xmlns:atom="http://www.w3.org/2005/Atom"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>News</title>
    <link>http://example.org/</link>
    <atom:link rel="self" href="http://example.org/rss"/>
    <dc:creator>Channel Creator</dc:creator>
    <item>
      <title>One</title>
      <atom:link rel="alternate" href="http://elsewhere.example/"/>
      <link>http://example.org/1</link>
      <guid>tag:example.org,1</guid>
      <description>&lt;p&gt;desc&lt;/p&gt;</description>
      <content:encoded>&lt;p&gt;Rich &lt;em&gt;body&lt;/em&gt;&lt;/p&gt;</content:encoded>
      <pubDate>Sat, 01 May 2021 12:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Two</title>
      <atom:link rel="alternate" href="http://elsewhere.example/2"/>
      <description>Only description</description>
      <dc:creator>Item Creator</dc:creator>
      <dc:date>2021-05-01T12:00:00Z</dc:date>
    </item>
    <item>
      <title>Three</title>
      <source url="http://origin.example/rss">Origin</source>
    </item>
  </channel>
</rss>
"""

RSS_WITHOUT_TOPIC = """\
<rss version="2.0">
  <channel>
    <title>No self</title>
    <item><title>Orphan</title><guid>orphan</guid></item>
  </channel>
</rss>
"""

RDF_FEED = """\
<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns="http://purl.org/rss/1.0/"
         xmlns:atom="http://www.w3.org/2005/Atom">
  <channel rdf:about="http://example.net/">
    <title>RDF</title>
    <atom:link rel="self" href="http://example.net/rdf"/>
  </channel>
  <item rdf:about="http://example.net/item/1">
    <title>RDF item</title>
    <link>http://example.net/item/1</link>
    <description>Text</description>
  </item>
</rdf:RDF>
"""


def _normalize(kind, source, fallback_author=""):
    return formats.normalize(kind, ET.fromstring(source), fallback_author)


def test_atom_entry_fields():
    entry = _normalize(FeedKind.ATOM, ATOM_FEED).entries[0]
    assert entry.topic == "http://example.com/feed.atom"
    assert entry.guid == "urn:entry:1"
    assert entry.title == "<b>First</b>"
    assert entry.content == "Hello <b>world</b>"
    assert entry.link == "http://example.com/1"
    assert entry.author == "Entry Author"
    assert entry.updated == MAY_FIRST_NOON


def test_atom_falls_back_to_feed_author_summary_and_now():
    before = int(time.time())
    entry = _normalize(FeedKind.ATOM, ATOM_FEED).entries[1]
    after = int(time.time())
    assert entry.author == "Feed Author"
    assert entry.title == "Plain &lt; title"
    assert entry.content == "summary text"
    assert entry.link == ""
    assert before <= entry.updated <= after


def test_atom_source_self_link_and_dc_date():
    entry = _normalize(FeedKind.ATOM, ATOM_FEED).entries[2]
    assert entry.topic == "http://other.example.com/feed"
    assert entry.author == "Source Author"
    assert entry.updated == MAY_FIRST_NOON


def test_atom_entry_without_topic_is_rejected():
    result = _normalize(FeedKind.ATOM, ATOM_ENTRY_WITHOUT_TOPIC)
    assert result.entries == []
    assert len(result.rejected) == 1
    assert isinstance(result.rejected[0], MalformedEntry)
    assert result.rejected[0].guid == "urn:lonely"


def test_rss_item_fields():
    entry = _normalize(FeedKind.RSS, RSS_FEED).entries[0]
    assert entry.topic == "http://example.org/rss"
    assert entry.guid == "tag:example.org,1"
    assert entry.title == "One"
    assert entry.content == "Rich <em>body</em>"
    assert entry.link == "http://example.org/1"
    assert entry.author == "Channel Creator"
    assert entry.updated == MAY_FIRST_NOON


def test_rss_ignores_namespaced_links_and_reads_dc_date():
    entry = _normalize(FeedKind.RSS, RSS_FEED).entries[1]
    assert entry.link == ""
    assert entry.guid == ""
    assert entry.content == "Only description"
    assert entry.author == "Item Creator"
    assert entry.updated == MAY_FIRST_NOON


def test_rss_source_url_topic():
    entry = _normalize(FeedKind.RSS, RSS_FEED).entries[2]
    assert entry.topic == "http://origin.example/rss"


def test_rss_without_topic_uses_fallback_author_and_rejects():
    result = _normalize(FeedKind.RSS, RSS_WITHOUT_TOPIC, fallback_author="Someone")
    assert result.entries == []
    assert [e.guid for e in result.rejected] == ["orphan"]


def test_rdf_items():
    result = _normalize(FeedKind.RSS, RDF_FEED, fallback_author="Fallback")
    (entry,) = result.entries
    assert entry.guid == "http://example.net/item/1"
    assert entry.topic == "http://example.net/rdf"
    assert entry.link == "http://example.net/item/1"
    assert entry.author == "Fallback"
    assert entry.content == "Text"


def test_find_topics():
    assert formats.find_topics(FeedKind.ATOM, ET.fromstring(ATOM_FEED)) == {
        "http://example.com/feed.atom",
        "http://other.example.com/feed",
    }
    assert formats.find_topics(FeedKind.RSS, ET.fromstring(RSS_FEED)) == {
        "http://example.org/rss",
        "http://origin.example/rss",
    }


@pytest.mark.parametrize("source, content_type, kind", [
    (ATOM_FEED, "application/atom+xml; charset=utf-8", FeedKind.ATOM),
    (RSS_FEED, "application/rss+xml", FeedKind.RSS),
    (RDF_FEED, "application/xml", FeedKind.RSS),
    (ATOM_FEED, None, FeedKind.ATOM),
])
def test_parse_document(source, content_type, kind):
    parsed_kind, root = formats.parse_document(source.encode("utf-8"), content_type)
    assert parsed_kind is kind
    assert root is not None


def test_parse_document_rejects_other_types():
    with pytest.raises(UnsupportedFeed):
        formats.parse_document(b"<html></html>", "text/html")
    with pytest.raises(UnsupportedFeed):
        formats.parse_document(b"<feed", "application/atom+xml")
    with pytest.raises(UnsupportedFeed):
        formats.parse_document(b"<html></html>", "text/xml")
