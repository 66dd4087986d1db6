import re
from typing import List, Optional

import phonenumbers

_PHONE_CANDIDATE = re.compile(r"\+?\d[\d/\s\-().]{4,}\d")
_PHONE_PUNCT = re.compile(r"[()\s/\-]")


def normalize_phone(raw: Optional[str], region: Optional[str] = "ME") -> Optional[str]:
    """Return an E.164 number when phonenumbers can parse it, else the bare digits.

    Digit strings outside 7..15 characters are rejected as noise.
    """
    if not raw or not isinstance(raw, str):
        return None
    cleaned = _PHONE_PUNCT.sub("", raw.strip()).replace(".", "")
    if not 7 <= len(cleaned) <= 15:
        return None
    try:
        num = phonenumbers.parse(cleaned, region or None)
    except phonenumbers.NumberParseException:
        return cleaned
    if phonenumbers.is_possible_number(num):
        return phonenumbers.format_number(num, phonenumbers.PhoneNumberFormat.E164)
    return cleaned


def extract_phones(text: str, region: Optional[str] = "ME") -> List[str]:
    """Find phone-like runs in free text, normalized and de-duplicated in order."""
    out: List[str] = []
    for match in _PHONE_CANDIDATE.finditer(text or ""):
        phone = normalize_phone(match.group(0), region=region)
        if phone and phone not in out:
            out.append(phone)
    return out
