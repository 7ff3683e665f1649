# utils/canva.py
"""Validation and preview helpers for Canva share links."""
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, urlsplit, urlunsplit

BLANK_TARGET = "about:blank"
HOST_FRAGMENT = "canva.com/"

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_VIEW_PATH_RE = re.compile(r"/(watch|view|present)(\?|$)")
_EDIT_SUFFIX_RE = re.compile(r"/(edit|present)/?$")
EMBED_MARKER = "embed"


@dataclass(frozen=True)
class LinkCheck:
    ok: bool
    url: Optional[str] = None
    reason: Optional[str] = None
    hint: Optional[str] = None


def check_share_link(raw: Optional[str]) -> LinkCheck:
    """
    Decide whether ``raw`` is a usable Canva share link.

    ``reason`` and ``hint`` are locale keys. Invalid results never carry a url.
    """
    s = str(raw or "").strip()
    if not s:
        return LinkCheck(ok=False, reason="link.required")
    if not _SCHEME_RE.match(s):
        return LinkCheck(ok=False, reason="link.scheme")
    if HOST_FRAGMENT not in s:
        return LinkCheck(ok=False, reason="link.host")

    # /view, /watch and /present open for the teacher; anything else only gets a tip
    hint = None if _VIEW_PATH_RE.search(s) else "link.hint_view"
    return LinkCheck(ok=True, url=s, hint=hint)


def preview_url(url: Optional[str]) -> str:
    """
    Turn a Canva design link into something an embedded viewer can show.

    Editing links become view links and get the ``embed`` marker. Other urls,
    and urls that fail to parse, come back unchanged.
    """
    s = str(url or "").strip()
    if not s:
        return BLANK_TARGET

    try:
        parts = urlsplit(s)
        host = parts.hostname or ""
    except ValueError:
        return s

    if "canva.com" not in host or "/design/" not in parts.path:
        return s

    path = _EDIT_SUFFIX_RE.sub("/view", parts.path)
    query = parts.query
    if EMBED_MARKER not in {k for k, _ in parse_qsl(query, keep_blank_values=True)}:
        query = f"{query}&{EMBED_MARKER}" if query else EMBED_MARKER
    return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))
