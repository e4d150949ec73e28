import html
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Optional

ATOM_NS = "http://www.w3.org/2005/Atom"
DC_NS = "http://purl.org/dc/elements/1.1/"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
RSS1_NS = "http://purl.org/rss/1.0/"
RSS09_NS = "http://my.netscape.com/rdf/simple/0.9/"

# namespaces a bare RSS element (link, title, ...) may live in
RSS_NAMESPACES = ("", RSS1_NS, RSS09_NS)


class FeedKind(Enum):
    ATOM = "atom"
    RSS = "rss"


@dataclass
class NormalizedFeedEntry:
    topic: str
    guid: str = ""
    author: str = ""
    title: str = ""
    content: str = ""
    link: str = ""
    updated: int = 0


@dataclass
class Normalized:
    entries: list = field(default_factory=list)
    rejected: list = field(default_factory=list)


def qname(ns: str, local: str) -> str:
    return f"{{{ns}}}{local}" if ns else local


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def child(elem, ns: str, local: str):
    if elem is None:
        return None
    return elem.find(qname(ns, local))


def first_child(elem, namespaces, local: str):
    for ns in namespaces:
        found = child(elem, ns, local)
        if found is not None:
            return found
    return None


def text_of(elem) -> str:
    if elem is None:
        return ""
    return "".join(elem.itertext()).strip()


def self_link(elem) -> Optional[str]:
    """href of the first atom:link with rel="self" directly under ``elem``."""
    if elem is None:
        return None
    for link in elem.findall(qname(ATOM_NS, "link")):
        href = (link.get("href") or "").strip()
        if link.get("rel") == "self" and href:
            return href
    return None


def inner_markup(elem) -> str:
    """Serialize the children of ``elem`` as markup, dropping namespace prefixes."""
    parts = [html.escape(elem.text or "", quote=False)]
    for node in elem:
        parts.append(_outer_markup(node))
        parts.append(html.escape(node.tail or "", quote=False))
    return "".join(parts)


def _outer_markup(elem) -> str:
    if not isinstance(elem.tag, str):
        # comments and processing instructions
        return ""
    name = local_name(elem.tag)
    attrs = "".join(f' {local_name(key)}="{html.escape(value)}"' for key, value in elem.attrib.items())
    return f"<{name}{attrs}>{inner_markup(elem)}</{name}>"


def _to_epoch(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def parse_rfc3339(value: str) -> Optional[int]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return _to_epoch(datetime.fromisoformat(value.replace("z", "Z").replace("t", "T")))
    except ValueError:
        return None


def parse_rfc822(value: str) -> Optional[int]:
    value = (value or "").strip()
    if not value:
        return None
    try:
        return _to_epoch(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError):
        return None


def first_timestamp(*candidates) -> int:
    """First parsed timestamp among ``candidates``; unknown dates mean now."""
    for value in candidates:
        if value is not None:
            return value
    return int(time.time())
