import re
from decimal import Decimal
from typing import List, Optional, Tuple
from .models import Intent, IntentFilters


def _words(*stems: str) -> str:
    """Whole-word alternation that also accepts simple inflections.

    A trailing "e" is dropped before suffixing so "purchase" also matches
    "purchasing" and "purchased".
    """
    forms = []
    for stem in stems:
        if stem.endswith("e"):
            forms.append(stem[:-1] + "(?:e|es|ed|ing)")
        else:
            forms.append(stem + "(?:s|es|ed|ing)?")
    return r"\b(?:" + "|".join(forms) + r")\b"


class IntentExtractor:
    """Rule-based intent classifier. Same input, same intent, every time."""

    # Evaluated in this order; first match wins
    ACTION_RULES: List[Tuple[str, str]] = [
        ("add_to_cart", _words("add", "want", "need", "buy", "purchase", "get", "getting", "order")),
        ("remove_from_cart", _words("remove", "delete") + r"|\btak(?:e|es|ing)\s+(?:it\s+|them\s+)?out\b"),
        ("checkout", r"\bcheck(?:ing)?\s?out\b|" + _words("pay", "complete", "finish") + r"|\bdone\s+shopping\b"),
        ("compare", _words("compare", "difference") + r"|\bversus\b|\bvs\b\.?"),
        ("search", _words("show", "find", "search") + r"|\blooking\s+for\b|\bwant\s+to\s+see\b"),
    ]

    COLORS = ['red', 'blue', 'green', 'black', 'white', 'yellow', 'pink', 'purple', 'orange', 'brown', 'gray', 'grey']
    COLOR_ALIASES = {"grey": "gray"}
    SIZES = ['xs', 'small', 'medium', 'large', 'xl', 'xxl', 's', 'm', 'l']

    MAX_PRICE_CUE_RE = re.compile(r"\b(?:under|less\s+than|cheaper\s+than|below)\b", re.I)
    MIN_PRICE_CUE_RE = re.compile(r"\b(?:over|more\s+than|above)\b", re.I)
    # A dollar amount is always "$"-prefixed; a bare number is never a price
    DOLLAR_RE = re.compile(r"\$\s*(\d+(?:\.\d{1,2})?)")
    QUANTITY_RE = re.compile(r"(\d+)\s*(?:items?|pieces?|units?)?", re.I)

    @classmethod
    def extract(cls, message: str) -> Intent:
        text = message or ""
        lowered = text.lower()

        filters = IntentFilters()
        filters.max_price = cls.detect_price(text, cls.MAX_PRICE_CUE_RE)
        filters.min_price = cls.detect_price(text, cls.MIN_PRICE_CUE_RE)
        filters.color = cls.detect_color(lowered)
        filters.size = cls.detect_size(lowered)

        return Intent(
            action=cls.detect_action(lowered),
            quantity=cls.detect_quantity(text),
            filters=filters,
        )

    @classmethod
    def detect_action(cls, lowered: str) -> str:
        for action, pattern in cls.ACTION_RULES:
            if re.search(pattern, lowered):
                return action
        return "none"

    @classmethod
    def detect_quantity(cls, text: str) -> int:
        """First integer in the message, wherever it appears; 1 when there is none."""
        match = cls.QUANTITY_RE.search(text)
        return int(match.group(1)) if match else 1

    @classmethod
    def detect_price(cls, text: str, cue_re: re.Pattern) -> Optional[Decimal]:
        """A price bound needs both the cue phrase and a dollar amount.

        The amount right after the cue wins ("over $20 and under $50");
        otherwise the first dollar amount in the message is used.
        """
        cue = cue_re.search(text)
        if not cue:
            return None
        adjacent = cls.DOLLAR_RE.match(text[cue.end():].lstrip())
        if adjacent:
            return Decimal(adjacent.group(1))
        first = cls.DOLLAR_RE.search(text)
        return Decimal(first.group(1)) if first else None

    @classmethod
    def detect_color(cls, lowered: str) -> Optional[str]:
        for color in cls.COLORS:
            if re.search(rf"\b{color}\b", lowered):
                return cls.COLOR_ALIASES.get(color, color)
        return None

    @classmethod
    def detect_size(cls, lowered: str) -> Optional[str]:
        for size in cls.SIZES:
            # apostrophes excluded so "I'm" is not size M
            if re.search(rf"(?<![\w']){size}(?![\w'])", lowered):
                return size.upper()
        return None
