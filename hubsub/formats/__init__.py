import xml.etree.ElementTree as ET

from hubsub.errors import UnsupportedFeed
from hubsub.formats import atom, rss
from hubsub.formats.common import (
    ATOM_NS, RDF_NS, FeedKind, Normalized, NormalizedFeedEntry, local_name,
)

# Dictionary mapping feed kind to its entry normalizer
normalizers = {
    FeedKind.ATOM: atom.normalize,
    FeedKind.RSS: rss.normalize,
}

topic_finders = {
    FeedKind.ATOM: atom.topics,
    FeedKind.RSS: rss.topics,
}

CONTENT_TYPES = {
    "application/atom+xml": FeedKind.ATOM,
    "application/rss+xml": FeedKind.RSS,
    "application/rdf+xml": FeedKind.RSS,
    "application/xml": None,
    "text/xml": None,
}


def normalize(kind: FeedKind, document, fallback_author: str = "") -> Normalized:
    return normalizers[kind](document, fallback_author)


def find_topics(kind: FeedKind, document) -> set:
    return topic_finders[kind](document)


def sniff_kind(root):
    name = local_name(root.tag)
    if root.tag in (f"{{{ATOM_NS}}}feed", f"{{{ATOM_NS}}}entry"):
        return FeedKind.ATOM
    if name == "rss" or root.tag == f"{{{RDF_NS}}}RDF":
        return FeedKind.RSS
    return None


def parse_document(body: bytes, content_type: str = None):
    """Parse a pushed body into ``(kind, root)``, raising UnsupportedFeed when it is no feed."""
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime and mime not in CONTENT_TYPES:
        raise UnsupportedFeed(f"unsupported content type {mime!r}")

    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise UnsupportedFeed(f"unparseable feed document: {e}") from e

    kind = sniff_kind(root) or CONTENT_TYPES.get(mime)
    if kind is None:
        raise UnsupportedFeed(f"unknown feed root element {root.tag!r}")
    return kind, root


__all__ = [
    "FeedKind", "Normalized", "NormalizedFeedEntry",
    "normalize", "find_topics", "parse_document", "sniff_kind",
]
