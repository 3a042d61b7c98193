# contacts.py
import re
from typing import List, Optional

from .errors import InvalidContact

# digit run with spaces / dashes / dots / parens between groups
PHONE_RE = re.compile(r'\+?\d[\d\-\s().]{8,}\d')

DIGIT_WORDS = {
    "zero": "0", "oh": "0", "o": "0",
    "one": "1", "two": "2", "three": "3", "four": "4", "five": "5",
    "six": "6", "seven": "7", "eight": "8", "nine": "9",
}


def normalize_phone(raw: str | None) -> str:
    """Canonical +<digits> form. Best effort, not full E.164 validation."""
    if not raw:
        raise InvalidContact("phone number is empty")
    digits = re.sub(r"\D", "", str(raw))
    if len(digits) < 10 or len(digits) > 15:
        raise InvalidContact(f"phone number has {len(digits)} digits")
    if str(raw).strip().startswith("+"):
        return "+" + digits
    if len(digits) == 10:  # US
        return "+1" + digits
    if digits.startswith("1") and len(digits) == 11:
        return "+" + digits
    return "+" + digits


def try_normalize_phone(raw: str | None) -> Optional[str]:
    try:
        return normalize_phone(raw)
    except InvalidContact:
        return None


def last_ten(raw: str | None) -> str:
    return re.sub(r"\D", "", raw or "")[-10:]


def same_line(a: str | None, b: str | None) -> bool:
    """True when both numbers share the same last 10 digits."""
    ta, tb = last_ten(a), last_ten(b)
    return len(ta) == 10 and ta == tb


def phone_search_forms(phone: str) -> List[str]:
    """Forms a customer phone may be stored under: +16195551234, 6195551234, 16195551234."""
    e164 = normalize_phone(phone)
    forms = [e164, e164[2:] if e164.startswith("+1") else e164[1:], e164[1:]]
    return list(dict.fromkeys(forms))


def _spoken_digits(token: str) -> Optional[str]:
    if token.isdigit():
        return token
    parts = [p for p in token.split("-") if p]
    if parts and all(p in DIGIT_WORDS or p.isdigit() for p in parts):
        return "".join(DIGIT_WORDS.get(p, p) for p in parts)
    return None


def extract_phone_from_text(text: str | None) -> Optional[str]:
    """Best-guess callback number from a transcript, as a bare digit string."""
    if not text:
        return None
    for m in PHONE_RE.finditer(text):
        digits = re.sub(r"\D", "", m.group(0))
        if len(digits) >= 10:
            return digits

    # "six one nine, four five eight ..." -> 619458...
    run = ""
    for raw_token in text.lower().split():
        token = raw_token.strip(".,;:!?()\"'")
        if not token:
            continue
        digits = _spoken_digits(token)
        if digits is not None:
            run += digits
            continue
        if len(run) >= 10:
            return run
        run = ""
    return run if len(run) >= 10 else None
