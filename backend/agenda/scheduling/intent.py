from __future__ import annotations

import enum
import re
import unicodedata
from typing import Optional


class Intent(str, enum.Enum):
    CONFIRM = "CONFIRM"
    CANCEL = "CANCEL"
    UNKNOWN = "UNKNOWN"


CONFIRM_TOKENS = frozenset({"sim", "ok", "confirmo", "confirmado", "certo"})
CANCEL_TOKENS = frozenset({"nao"})
CANCEL_FRAGMENTS = ("cancel", "desmarcar")

_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """Case-fold, strip diacritics and zero-width characters, collapse spaces."""
    if not text:
        return ""
    t = unicodedata.normalize("NFKC", str(text))
    t = _ZERO_WIDTH.sub("", t)
    t = unicodedata.normalize("NFKD", t.casefold())
    t = "".join(ch for ch in t if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", t).strip()


def classify(text: Optional[str]) -> Intent:
    """Map an inbound reply to CONFIRM / CANCEL / UNKNOWN. Never raises."""
    t = normalize_text(text)
    if t in CONFIRM_TOKENS:
        return Intent.CONFIRM
    if t in CANCEL_TOKENS or any(fragment in t for fragment in CANCEL_FRAGMENTS):
        return Intent.CANCEL
    return Intent.UNKNOWN
