"""Deterministic title and preview derivation from message text."""

from __future__ import annotations

import re

TITLE_SENTENCE_MAX = 60
TITLE_TRUNCATE_AT = 50
PREVIEW_MAX = 100
ELLIPSIS = "..."

_LINK = re.compile(r"<([^<>|]+)\|([^<>]+)>")
_BARE_LINK = re.compile(r"<((?:https?|mailto):[^<>]+)>")
_EMPHASIS = re.compile(r"[*_`~]")
_WHITESPACE = re.compile(r"\s+")
_QUESTION = re.compile(r"^[A-Z][^.!?]*\?")
_SENTENCE_END = re.compile(r"[.!]")


def strip_markup(text: str) -> str:
    """Remove emphasis markers, unwrap links and collapse whitespace.

    ``<https://example.com|docs>`` becomes ``docs``; mentions such as
    ``<@U123>`` are left as they are.
    """
    text = _LINK.sub(r"\2", text)
    text = _BARE_LINK.sub(r"\1", text)
    text = _EMPHASIS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def derive_title(text: str) -> str:
    """Build a short thread title from the parent message text.

    A leading question is kept whole.  Otherwise the first sentence is used
    when it is at most 60 characters, else the text is cut at 50 characters
    with an ellipsis.
    """
    clean = strip_markup(text)
    if _QUESTION.match(clean):
        return clean.split("?", 1)[0] + "?"

    first_sentence = _SENTENCE_END.split(clean, maxsplit=1)[0].strip()
    if 0 < len(first_sentence) <= TITLE_SENTENCE_MAX:
        return first_sentence

    if len(clean) > TITLE_TRUNCATE_AT:
        return clean[:TITLE_TRUNCATE_AT] + ELLIPSIS
    return clean


def truncate(text: str, max_length: int = PREVIEW_MAX) -> str:
    """Cut *text* to *max_length* characters, ellipsis included."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


def derive_preview(text: str, max_length: int = PREVIEW_MAX) -> str:
    return truncate(strip_markup(text), max_length)
