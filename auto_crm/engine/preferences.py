"""Keyword-based extraction of car preferences and intent from message text.

Both extractors are pure: identical text always yields an identical result.
"""

from __future__ import annotations

import re

from auto_crm.config import DEFAULT_BUDGET_MULTIPLIER
from auto_crm.constants import (
    BODY_TYPE_KEYWORDS,
    BRANDS,
    BUDGET_QUALIFIERS,
    FUEL_KEYWORDS,
    INTENT_GENERAL,
    INTENT_KEYWORDS,
    TRANSMISSION_KEYWORDS,
)
from auto_crm.data.models import CarPreferences

_QUALIFIERS = "|".join(
    q.replace(" ", r"\s+") for q in sorted(BUDGET_QUALIFIERS, key=len, reverse=True)
)
_GROUPED = r"\d{1,3}(?:[ .,]\d{3})+"

_BUDGET_RE = re.compile(
    rf"(?:\b(?P<qualifier>{_QUALIFIERS})\b(?:\s*:|\s+(?:of|is))?\s*)?"
    r"(?P<currency>€|\beuros?\b)?\s*"
    rf"(?P<amount>{_GROUPED}(?!\d)|\d+(?:[.,]\d+)?)"
    r"(?:\s*(?P<suffix>k\b|mil\b|€|euros?\b))?",
    re.IGNORECASE,
)
# A lone number with no budget wording: "BMW 20", "something around 15.000".
# Single digits, four-digit years, plates, model codes ("320d") and
# durations or distances are not budgets.
_BARE_AMOUNT_RE = re.compile(
    rf"(?<![\w.,:-])(?P<amount>{_GROUPED}|\d{{2,3}}|\d{{5,6}})"
    r"(?![\w:-]|[ .,]\d|\s*(?:km|kms|h|hours?|horas?|days?|dias?|months?|meses|years?|anos)\b)",
    re.IGNORECASE,
)
_GROUPED_THOUSANDS_RE = re.compile(_GROUPED)
_THOUSANDS_SUFFIXES = frozenset({"k", "mil"})


def _first_label(text: str, vocabulary: tuple[tuple[str, tuple[str, ...]], ...]) -> str | None:
    for label, keywords in vocabulary:
        if any(keyword in text for keyword in keywords):
            return label
    return None


def _parse_amount(raw: str) -> float:
    if _GROUPED_THOUSANDS_RE.fullmatch(raw):
        return float(re.sub(r"[ .,]", "", raw))
    return float(raw.replace(",", "."))


def _scale(amount: float, suffix: str, multiplier: int) -> int:
    if suffix in _THOUSANDS_SUFFIXES:
        amount *= 1000
    elif amount < 1000:
        amount *= multiplier
    return int(round(amount))


def extract_budget(text: str, *, multiplier: int = DEFAULT_BUDGET_MULTIPLIER) -> int | None:
    """Return the first budget ceiling mentioned in ``text``.

    A number next to a qualifier ("under", "up to", "budget", "até", ...),
    a currency marker or a thousands suffix ("k", "mil") wins.  Failing that,
    the first lone number that reads like a price is used ("BMW 20").
    Amounts below 1000 are read as thousands and scaled by ``multiplier``;
    amounts typed in full ("20000", "20.000", "20 000") are kept as they are.
    """
    for match in _BUDGET_RE.finditer(text):
        suffix = (match.group("suffix") or "").lower()
        if not (match.group("qualifier") or match.group("currency") or suffix):
            continue
        amount = _parse_amount(match.group("amount"))
        if amount > 0:
            return _scale(amount, suffix, multiplier)

    for match in _BARE_AMOUNT_RE.finditer(text):
        amount = _parse_amount(match.group("amount"))
        if amount > 0:
            return _scale(amount, "", multiplier)
    return None


def extract_preferences(
    text: str,
    *,
    budget_multiplier: int = DEFAULT_BUDGET_MULTIPLIER,
) -> CarPreferences:
    """Parse free text into a :class:`CarPreferences` record (possibly empty)."""
    lowered = (text or "").lower()
    make = next((brand for brand in BRANDS if brand in lowered), None)
    return CarPreferences(
        make=make.capitalize() if make else None,
        max_budget=extract_budget(lowered, multiplier=budget_multiplier),
        fuel=_first_label(lowered, FUEL_KEYWORDS),
        transmission=_first_label(lowered, TRANSMISSION_KEYWORDS),
        body_type=_first_label(lowered, BODY_TYPE_KEYWORDS),
    )


def extract_intent(text: str) -> str:
    """Classify an inbound message into one of the lead intents."""
    lowered = (text or "").lower()
    for intent, keywords in INTENT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return intent
    return INTENT_GENERAL
