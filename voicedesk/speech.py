# speech.py
"""Text meant to be read aloud by the voice agent."""
import re
from typing import Iterable

from .models import LineItem

NUMBER_WORDS = {
    1: "one", 2: "two", 3: "three", 4: "four", 5: "five",
    6: "six", 7: "seven", 8: "eight", 9: "nine", 10: "ten",
}

_PLURALIZABLE = re.compile(r"\b(steak|chop|roast|ribeye|strip|filet)\b", re.I)


def clean_title(title: str) -> str:
    t = title.replace("|", "")
    t = re.sub(r"\s+", " ", t)
    t = re.sub(r"(\d+)-(\d+)oz", r"\1 to \2 ounces", t, flags=re.I)
    t = re.sub(r"(\d+)oz", r"\1 ounces", t, flags=re.I)
    t = re.sub(r"B?MS (\d+)\+?", r"marbling score \1", t)
    t = t.replace("A5", "A-five")
    return t.strip()


def product_for_speech(quantity: int, title: str) -> str:
    """``2, "NY Strip | 12oz"`` -> ``two NY Strips 12 ounces``."""
    qty = NUMBER_WORDS.get(quantity, str(quantity))
    t = clean_title(title)
    if quantity != 1:
        matches = list(_PLURALIZABLE.finditer(t))
        if matches:
            last = matches[-1]
            t = t[:last.end()] + "s" + t[last.end():]
    return f"{qty} {t}"


def items_for_speech(items: Iterable[LineItem], limit: int = 5) -> str:
    return ", ".join(product_for_speech(li.quantity, li.title) for li in list(items)[:limit])


def items_for_display(items: Iterable[LineItem], limit: int = 5) -> str:
    return ", ".join(f"{li.quantity}x {li.title}" for li in list(items)[:limit])


def spell_code(code: str) -> str:
    """``JAMES12`` -> ``J A M E S 1 2`` so TTS reads it letter by letter."""
    return " ".join(code)
