"""Whitelist sanitizer for markup arriving in pushed feeds.

Feed bodies are tokenized in one pass. Only a handful of constructs survive:
paragraphs, inline emphasis (em, strong, i, u, b), anchors with an href,
images with a src, line breaks and h1-h6 headers (rendered bold). Every
other tag is dropped and its text kept. The token stream is then rendered
back to markup and line breaks are tidied up.

This is deliberately narrow and meant for feed entries, not for arbitrary
hostile documents.
"""
import html
import re
from collections import Counter, namedtuple

LINK_SCHEMES = frozenset(("http", "https", "ftp", "mailto"))
IMAGE_SCHEMES = frozenset(("http", "https", "ftp"))

# token kinds
TEXT = "text"
OPEN = "open"
CLOSE = "close"
BREAK = "break"
IMAGE = "image"
ANCHOR = "anchor"
ANCHOR_END = "anchor_end"
HEADER = "header"
HEADER_END = "header_end"

# rendered piece kinds
SPACE = "space"
CHUNK = "chunk"

Token = namedtuple("Token", "kind value")
Piece = namedtuple("Piece", "kind markup")

_BREAK_PIECE = Piece(BREAK, "<br />")

_SCRIPT_RE = re.compile(r"<(script|style)\b[^<>]*>.*?(?:</\1\s*>|\Z)", re.IGNORECASE | re.DOTALL)
_WS_RE = re.compile(r"\s+")
_CONTROL_RE = re.compile(r"[\x00-\x20]+")
_SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):")
_PATH_START_RE = re.compile(r"[/?#]")

# every alternative stops at the next "<" or ">", so a failed match never
# scans past the tag it started on
_TOKEN_RE = re.compile(
    r"""
      (?P<header><h(?P<level>[1-6])\b[^<>]*>)
    | (?P<header_end></h(?P<end_level>[1-6])\s*>)
    | (?P<anchor><a\s[^<>]*?(?<![\w-])href\s*=\s*(?P<aq>["'])(?P<href>[^"'<>]*)(?P=aq)(?=[\s/>])[^<>]*>)
    | (?P<anchor_end></a\s*>)
    | (?P<image><img\s[^<>]*?(?<![\w-])src\s*=\s*(?P<iq>["'])(?P<src>[^"'<>]*)(?P=iq)[^<>]*>)
    | (?P<br><br\b[^<>]*>)
    | (?P<inline><(?P<close>/)?(?P<name>p|em|strong|i|u|b)\b[^<>]*>)
    | (?P<tag><(?=[/!?a-zA-Z])[^<>]*>)
    """,
    re.IGNORECASE | re.VERBOSE,
)


def _strip_escapes(markup):
    # removing "{{" or "}}" can bring a new pair together, so reduce like a stack
    if "{{" not in markup and "}}" not in markup:
        return markup
    out = []
    for char in markup:
        if char in "{}" and out and out[-1] == char:
            out.pop()
        else:
            out.append(char)
    return "".join(out)


def _strip_scripts(markup):
    while True:
        markup, count = _SCRIPT_RE.subn("", markup)
        if not count:
            return markup


def _escape_text(text):
    return text.replace("<", "&lt;").replace(">", "&gt;")


def _safe_url(url, schemes):
    url = url.strip()
    if not url:
        return None
    # browsers decode entities and skip control characters before reading a scheme
    probe = _CONTROL_RE.sub("", html.unescape(url))
    scheme = _SCHEME_RE.match(probe)
    if scheme and scheme.group(1).lower() not in schemes:
        return None
    if not scheme and ":" in _PATH_START_RE.split(probe, 1)[0]:
        return None
    return url


def _closer(token):
    if token.kind == ANCHOR_END:
        return ANCHOR
    if token.kind == HEADER_END:
        return (HEADER, token.value)
    return None


def _opener(token):
    if token.kind == ANCHOR:
        return ANCHOR
    if token.kind == HEADER:
        return (HEADER, token.value)
    return None


def _finish(tokens):
    """Drop anchor and header openers that are never closed, merge text runs."""
    closed = set()
    keep = [True] * len(tokens)
    for index in range(len(tokens) - 1, -1, -1):
        token = tokens[index]
        closer = _closer(token)
        if closer is not None:
            closed.add(closer)
            continue
        opener = _opener(token)
        if opener is not None and opener not in closed:
            keep[index] = False

    out = []
    text = []
    for token, kept in zip(tokens, keep):
        if not kept:
            continue
        if token.kind == TEXT:
            text.append(token.value)
            continue
        if text:
            out.append(Token(TEXT, "".join(text)))
            text = []
        out.append(token)
    if text:
        out.append(Token(TEXT, "".join(text)))
    return out


def tokenize(markup):
    """Split ``markup`` into whitelisted tokens; unknown tags are discarded.

    Anchors and headers come out as an opening and a closing token with their
    content in between. An opener with no close anywhere after it is dropped
    like any unknown tag.
    """
    tokens = []
    pos = 0
    for match in _TOKEN_RE.finditer(markup):
        if match.start() > pos:
            tokens.append(Token(TEXT, markup[pos:match.start()]))
        pos = match.end()

        if match.group("header") is not None:
            tokens.append(Token(HEADER, int(match.group("level"))))
        elif match.group("header_end") is not None:
            tokens.append(Token(HEADER_END, int(match.group("end_level"))))
        elif match.group("anchor") is not None:
            href = _safe_url(match.group("href"), LINK_SCHEMES)
            if href is not None:
                tokens.append(Token(ANCHOR, href))
        elif match.group("anchor_end") is not None:
            tokens.append(Token(ANCHOR_END, None))
        elif match.group("image") is not None:
            src = _safe_url(match.group("src"), IMAGE_SCHEMES)
            if src is not None:
                tokens.append(Token(IMAGE, src))
        elif match.group("br") is not None:
            tokens.append(Token(BREAK, None))
        elif match.group("inline") is not None:
            kind = CLOSE if match.group("close") else OPEN
            tokens.append(Token(kind, match.group("name").lower()))

    if pos < len(markup):
        tokens.append(Token(TEXT, markup[pos:]))
    return _finish(tokens)


def _image_pieces(src):
    return (_BREAK_PIECE, Piece(CHUNK, f'<img src="{src}" alt="" />'), _BREAK_PIECE)


def _captured_pieces(opener, value, texts, images):
    text = _WS_RE.sub(" ", _escape_text(_strip_escapes("".join(texts)))).strip()
    pieces = []
    if opener == HEADER:
        if text:
            pieces.append(Piece(CHUNK, f"<strong>{text}</strong>"))
        return pieces
    if text:
        pieces.append(Piece(CHUNK, f'<a href="{value}">{text}</a>'))
    for src in images:
        pieces.extend(_image_pieces(src))
    return pieces


def render(tokens):
    """Turn tokens into markup pieces, keeping inline tags balanced.

    Inside an anchor or header only text is kept. Images inside an anchor
    follow the link.
    """
    pieces = []
    stack = []
    depth = Counter()
    capture = until = None
    for token in tokens:
        kind, value = token
        if capture is not None:
            opener, _, texts, images = capture
            if kind == TEXT:
                texts.append(value)
            elif kind == IMAGE and opener == ANCHOR:
                images.append(value)
            elif _closer(token) == until:
                pieces.extend(_captured_pieces(*capture))
                capture = None
            continue

        if kind == TEXT:
            text = _escape_text(_strip_escapes(value))
            pieces.append(Piece(CHUNK if text.strip() else SPACE, text))
        elif kind in (ANCHOR, HEADER):
            capture = (kind, value, [], [])
            until = _opener(token)
        elif kind == BREAK:
            pieces.append(_BREAK_PIECE)
        elif kind == IMAGE:
            pieces.extend(_image_pieces(value))
        elif kind in (OPEN, CLOSE) and value == "p":
            pieces.append(_BREAK_PIECE)
        elif kind == OPEN:
            stack.append(value)
            depth[value] += 1
            pieces.append(Piece(OPEN, f"<{value}>"))
        elif kind == CLOSE and depth[value]:
            while stack:
                tag = stack.pop()
                depth[tag] -= 1
                pieces.append(Piece(CLOSE, f"</{tag}>"))
                if tag == value:
                    break

    if capture is not None:
        pieces.extend(_captured_pieces(*capture))
    while stack:
        pieces.append(Piece(CLOSE, f"</{stack.pop()}>"))
    return pieces


def _last_significant(pieces):
    for piece in reversed(pieces):
        if piece.kind != SPACE:
            return piece
    return None


def _drop_trailing_breaks(pieces):
    index = len(pieces) - 1
    while index >= 0:
        kind = pieces[index].kind
        if kind == BREAK:
            del pieces[index]
        elif kind != SPACE:
            break
        index -= 1


def normalize_breaks(pieces):
    out = []
    for piece in pieces:
        if piece.kind == BREAK:
            last = _last_significant(out)
            if last is None or last.kind == BREAK:
                continue
        elif piece.kind == CLOSE:
            _drop_trailing_breaks(out)
        out.append(piece)
    _drop_trailing_breaks(out)
    return out


def sanitize(raw):
    """Reduce untrusted markup to the whitelisted subset. Never raises."""
    if not raw:
        return ""
    markup = _strip_scripts(_strip_escapes(str(raw)))
    pieces = normalize_breaks(render(tokenize(markup)))
    return _WS_RE.sub(" ", "".join(piece.markup for piece in pieces)).strip()
