"""Text helpers shared by the normalizer, dedup and reconciliation engines."""
import re
import unicodedata
from typing import Optional

# Letters that NFKD does not decompose to an ASCII base
_EXTRA_FOLDS = str.maketrans({"đ": "d", "ð": "d", "ł": "l", "ø": "o", "ß": "ss", "æ": "ae", "œ": "oe"})

_NON_ALNUM = re.compile(r"[^a-z0-9 ]+")
_WHITESPACE = re.compile(r"\s+")

GEOKEY_PRECISION = 5
SIMILARITY_WINDOW = 1


def clamp(value) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE.sub(" ", str(value or "")).strip()


def normalize_name(value: Optional[str]) -> str:
    """Lowercase, fold diacritics to ASCII and drop punctuation.

    >>> normalize_name("  Apoteka  Nikšić-Centar ")
    'apoteka niksic centar'
    """
    text = str(value or "").lower().translate(_EXTRA_FOLDS)
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = _NON_ALNUM.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def name_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Windowed character-match similarity between two names.

    Each character of ``a`` claims the first unused equal character of ``b``
    within one index of its own position. The score is the number of claimed
    characters divided by the longer normalized length.
    """
    a = normalize_name(a)
    b = normalize_name(b)
    if not a or not b:
        return 0.0
    used = [False] * len(b)
    matches = 0
    for i, ch in enumerate(a):
        for j in range(max(0, i - SIMILARITY_WINDOW), min(len(b), i + SIMILARITY_WINDOW + 1)):
            if not used[j] and b[j] == ch:
                used[j] = True
                matches += 1
                break
    return matches / max(len(a), len(b))


def geokey(lat: Optional[float], lng: Optional[float]) -> Optional[str]:
    """Rounded coordinate key (5 decimals, roughly one metre)."""
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    if isinstance(lat, bool) or isinstance(lng, bool):
        return None
    return f"{lat:.{GEOKEY_PRECISION}f},{lng:.{GEOKEY_PRECISION}f}"
