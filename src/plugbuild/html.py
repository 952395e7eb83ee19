"""Insertion points for content injected into an HTML shell.

The UI product is inlined into ``ui.html``: stylesheets go where ``<head>``
content belongs and the bundled script goes at the end of the document.
Both finders tolerate incomplete documents and never fail; they fall back to
the start or the end of the text.
"""

from __future__ import annotations

import re

_FLAGS = re.IGNORECASE | re.MULTILINE

_HEAD_CLOSE_RE = re.compile(r"\s*</head[^>]*>", _FLAGS)
_BODY_OPEN_RE = re.compile(r"\s*<body[^>]*>", _FLAGS)
_HTML_OPEN_RE = re.compile(r"(<html[^>]*>[ \t]*[\r\n]?)", _FLAGS)
_DOCTYPE_RE = re.compile(r"(<!doctype[^>]*>[ \t]*[\r\n]?)", _FLAGS)

_BODY_CLOSE_RE = re.compile(r"</body[^>]*>", _FLAGS)
_HTML_CLOSE_RE = re.compile(r"</html[^>]*>", _FLAGS)


def find_head_index(html: str) -> int:
    """Return the offset in *html* where head content should be inserted.

    Tries, in order: just before ``</head>``, just before ``<body>``, just
    after ``<html>``, just after ``<!doctype>``, and finally offset 0.
    """
    for pattern in (_HEAD_CLOSE_RE, _BODY_OPEN_RE):
        match = pattern.search(html)
        if match:
            return match.start()
    for pattern in (_HTML_OPEN_RE, _DOCTYPE_RE):
        match = pattern.search(html)
        if match:
            return match.end(1)
    return 0


def find_tail_index(html: str) -> int:
    """Return the offset in *html* where trailing content should be inserted.

    Tries just before ``</body>``, then just before ``</html>``, and falls
    back to the end of the text.
    """
    for pattern in (_BODY_CLOSE_RE, _HTML_CLOSE_RE):
        match = pattern.search(html)
        if match:
            return match.start()
    return len(html)


def inject(html: str, head: str = "", tail: str = "") -> str:
    """Return *html* with *head* inserted at the head index and *tail* at the tail index."""
    tail_at = find_tail_index(html)
    if not head:
        return html[:tail_at] + tail + html[tail_at:]
    head_at = find_head_index(html)
    if head_at > tail_at:
        head_at = tail_at
    return html[:head_at] + head + html[head_at:tail_at] + tail + html[tail_at:]
