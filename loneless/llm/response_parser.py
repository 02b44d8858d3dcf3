"""
Response Parser
===============

Post-processing of model replies.

Models are told not to use markdown, but they still occasionally answer with
**bold**, *italics* or bulleted lists. Chat bubbles render plain text, so the
orchestrator strips those markers before storing a reply. Replies that are
read aloud get a second, stricter pass: emoji, ellipses and stray markdown
symbols are removed, and sentence punctuation is spaced so the speech engine
pauses in the right places.
"""

import re
import unicodedata

# Emphasis: **bold** / *italic*
_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC = re.compile(r"\*([^*]+)\*")

# List markers at the beginning of a line
_BULLET = re.compile(r"^[ \t]*[*\-] ", re.MULTILINE)
_NUMBERED = re.compile(r"^[ \t]*\d+\. ", re.MULTILINE)

_BLANK_LINES = re.compile(r"\n\s*\n")

# Speech preparation
_SPEECH_MARKUP = re.compile(r"\*\*|\* |- |\d+\. ")
_ELLIPSIS = re.compile(r"\.\.\.|…")
_WHITESPACE = re.compile(r"\s+")

# Unicode categories dropped before speech: other symbols (emoji, pictographs)
# and unassigned code points.
_UNSPOKEN_CATEGORIES = frozenset({"So", "Cn"})
# Invisible parts of emoji sequences (zero width joiner, variation selector).
_EMOJI_JOINERS = frozenset({"\u200d", "\ufe0f"})


def clean_response_text(text: str) -> str:
    """
    Strip markdown emphasis and list markers from a reply.

    Examples:
        >>> clean_response_text("**Hi** there")
        'Hi there'
        >>> clean_response_text("- one\\n- two")
        'one\\ntwo'
    """
    # List markers first: a "* " bullet would otherwise pair up as italics.
    cleaned = _BULLET.sub("", text)
    cleaned = _NUMBERED.sub("", cleaned)
    cleaned = _BOLD.sub(r"\1", cleaned)
    cleaned = _ITALIC.sub(r"\1", cleaned)
    cleaned = _BLANK_LINES.sub("\n", cleaned)
    return cleaned.strip()


def _strip_symbols(text: str) -> str:
    return "".join(
        ch for ch in text if ch not in _EMOJI_JOINERS and unicodedata.category(ch) not in _UNSPOKEN_CATEGORIES
    )


def prepare_speech_text(text: str) -> str:
    """
    Turn a reply into text suitable for speech synthesis.

    Removes emoji and other symbols, ellipses and markdown remnants,
    collapses whitespace and spaces out ``!`` / ``?``.
    """
    spoken = _strip_symbols(text)
    spoken = _ELLIPSIS.sub("", spoken)
    spoken = _SPEECH_MARKUP.sub("", spoken)
    spoken = _WHITESPACE.sub(" ", spoken)
    spoken = spoken.replace("!", "! ").replace("?", "? ")
    return _WHITESPACE.sub(" ", spoken).strip()
