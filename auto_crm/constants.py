"""Shared constants used across the automation engine.

Keyword vocabularies are matched as lowercase substrings of the message text.
"""

from __future__ import annotations

import re

WHATSAPP_SOURCE = "whatsapp"

# ── Journey stages ──────────────────────────────────────────────────

STAGE_INITIAL_INTEREST = "initial_interest"
STAGE_PREFERENCES_GATHERED = "preferences_gathered"
STAGE_RECOMMENDATIONS_SENT = "recommendations_sent"
STAGE_FOLLOW_UP_ENGAGED = "follow_up_engaged"
STAGE_HOT_LEAD = "hot_lead"
STAGE_PURCHASE_INTENT = "purchase_intent"
STAGE_CONVERTED = "converted"
STAGE_DORMANT = "dormant"

JOURNEY_STAGES: tuple[str, ...] = (
    STAGE_INITIAL_INTEREST,
    STAGE_PREFERENCES_GATHERED,
    STAGE_RECOMMENDATIONS_SENT,
    STAGE_FOLLOW_UP_ENGAGED,
    STAGE_HOT_LEAD,
    STAGE_PURCHASE_INTENT,
    STAGE_CONVERTED,
    STAGE_DORMANT,
)

# ── Lead intent / status ────────────────────────────────────────────

INTENT_PURCHASE = "purchase_intent"
INTENT_SELL = "sell_intent"
INTENT_SERVICE = "service_intent"
INTENT_PRICING = "pricing_inquiry"
INTENT_FINANCING = "financing_inquiry"
INTENT_VIEWING = "viewing_request"
INTENT_GENERAL = "general_inquiry"
INTENT_CAR_SHOPPING = "car_shopping"

LEAD_INTENTS: tuple[str, ...] = (
    INTENT_PURCHASE,
    INTENT_SELL,
    INTENT_SERVICE,
    INTENT_PRICING,
    INTENT_FINANCING,
    INTENT_VIEWING,
    INTENT_GENERAL,
    INTENT_CAR_SHOPPING,
)

STATUS_NEW = "new"
STATUS_QUALIFIED = "qualified"
STATUS_WARM = "warm"
STATUS_HOT = "hot"
STATUS_CONVERTED = "converted"

LEAD_STATUSES: tuple[str, ...] = (
    STATUS_NEW,
    STATUS_QUALIFIED,
    STATUS_WARM,
    STATUS_HOT,
    STATUS_CONVERTED,
)

# Ordered: first keyword group that appears in the message decides the intent.
INTENT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (INTENT_PURCHASE, ("buy", "purchase", "interested")),
    (INTENT_SELL, ("sell", "trade")),
    (INTENT_SERVICE, ("service", "maintenance", "repair")),
    (INTENT_PRICING, ("price", "cost", "quote")),
    (INTENT_FINANCING, ("financing", "loan", "credit")),
    (INTENT_VIEWING, ("test drive", "viewing", "see")),
)

# ── Preference vocabulary ───────────────────────────────────────────

BRANDS: tuple[str, ...] = (
    "bmw",
    "mercedes",
    "volkswagen",
    "audi",
    "toyota",
    "ford",
    "renault",
    "peugeot",
    "seat",
    "skoda",
)

FUEL_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Diesel", ("diesel",)),
    ("Gasolina", ("gasolina", "gasoline", "petrol")),
    ("Elétrico", ("elétrico", "eletrico", "electric")),
    ("Hibrido (Gasolina)", ("híbrido", "hibrido", "hybrid")),
)

TRANSMISSION_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Automática", ("automática", "automatica", "automatic")),
    ("Manual", ("manual",)),
)

BODY_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("SUV", ("suv",)),
    ("Sedan", ("sedan",)),
    ("Carrinha", ("carrinha", "wagon")),
)

BUDGET_QUALIFIERS: tuple[str, ...] = (
    "até", "ate", "until", "under", "below", "maximum", "max", "up to", "budget",
)

# ── Signal keywords ─────────────────────────────────────────────────

JOURNEY_PRICE_KEYWORDS: tuple[str, ...] = ("price", "quanto", "€")
JOURNEY_VISIT_KEYWORDS: tuple[str, ...] = ("visit", "see", "book")
URGENCY_KEYWORDS: tuple[str, ...] = ("urgent", "today", "now", "immediately", "asap")

RESERVATION_KEYWORDS: tuple[str, ...] = ("reserve", "book", "hold")
PRICE_INQUIRY_KEYWORDS: tuple[str, ...] = ("price", "cost", "€", "quanto")
VISIT_INQUIRY_KEYWORDS: tuple[str, ...] = ("visit", "see", "test", "drive")

# ── Inventory ───────────────────────────────────────────────────────

ON_DISPLAY_STATUS = "Exposição"
IN_PREPARATION_STATUS = "Preparação"
SOLD_STATUS = "Vendido"

# Portuguese plates: three dash-separated pairs, e.g. AA-00-00 or 00-AA-00.
PLATE_RE = re.compile(
    r"\b((?:[A-Z]{2}|\d{2})-(?:[A-Z]{2}|\d{2})-(?:[A-Z]{2}|\d{2}))\b",
    re.IGNORECASE,
)


def contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    """Case-insensitive substring check against a keyword vocabulary."""
    lowered = text.lower()
    return any(keyword in lowered for keyword in keywords)
