"""Lead scoring: additive point rules, classification and batch hot-lead detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from auto_crm.constants import (
    INTENT_CAR_SHOPPING,
    INTENT_FINANCING,
    INTENT_GENERAL,
    INTENT_PRICING,
    INTENT_PURCHASE,
    INTENT_VIEWING,
    STATUS_CONVERTED,
    STATUS_HOT,
    STATUS_QUALIFIED,
    STATUS_WARM,
    URGENCY_KEYWORDS,
    WHATSAPP_SOURCE,
    contains_any,
)
from auto_crm.data.models import Lead
from auto_crm.data.store import LeadStore
from auto_crm.messages import sales_alert_message
from auto_crm.messaging import MessagingGateway, send_message
from auto_crm.normalization import hours_since, parse_iso_datetime, to_iso, utc_now

logger = logging.getLogger(__name__)

MAX_SCORE = 100
HOT_LEAD_WINDOW_DAYS = 7

INTENT_SCORES: dict[str, int] = {
    INTENT_PURCHASE: 40,
    INTENT_FINANCING: 35,
    INTENT_VIEWING: 30,
    INTENT_PRICING: 25,
    INTENT_CAR_SHOPPING: 20,
    INTENT_GENERAL: 10,
}

# (minimum, points): highest matching threshold wins.
MESSAGE_COUNT_TIERS: tuple[tuple[int, int], ...] = ((5, 20), (3, 15), (2, 10))
BUDGET_TIERS: tuple[tuple[int, int], ...] = ((20000, 20), (10000, 15), (5000, 10))
# (maximum hours since last contact, points): tightest window wins.
RECENCY_TIERS: tuple[tuple[float, int], ...] = ((2, 15), (24, 10), (72, 5))

URGENCY_POINTS = 25
MAKE_PREFERENCE_POINTS = 15
SPECIFIC_CAR_POINTS = 20
EMAIL_POINTS = 10
NAME_POINTS = 5

# (minimum score, status, reason)
CLASSIFICATION_BANDS: tuple[tuple[int, str, str], ...] = (
    (80, STATUS_HOT, "high_purchase_intent_detected"),
    (60, STATUS_WARM, "moderate_interest_detected"),
    (40, STATUS_QUALIFIED, "basic_interest_confirmed"),
)
CATEGORY_COLD = "cold"


@dataclass(frozen=True)
class LeadScore:
    score: int
    category: str


@dataclass(frozen=True)
class HotLead:
    lead_id: str
    phone: str
    score: int


def _tier_points(value: float, tiers: tuple[tuple[int, int], ...]) -> int:
    for minimum, points in tiers:
        if value >= minimum:
            return points
    return 0


def calculate_lead_score(lead: Lead, now: datetime | None = None) -> int:
    """Sum the scoring rules for ``lead`` and clamp the result to [0, 100]."""
    now = now or utc_now()
    meta = lead.meta
    prefs = meta.car_preferences

    score = INTENT_SCORES.get(lead.intent, 0)
    score += _tier_points(meta.message_count, MESSAGE_COUNT_TIERS)

    if contains_any(meta.last_message or meta.first_message, URGENCY_KEYWORDS):
        score += URGENCY_POINTS

    if prefs.max_budget:
        score += _tier_points(prefs.max_budget, BUDGET_TIERS)
    if prefs.make:
        score += MAKE_PREFERENCE_POINTS
    if meta.specific_car_interest:
        score += SPECIFIC_CAR_POINTS

    if lead.email:
        score += EMAIL_POINTS
    if lead.name:
        score += NAME_POINTS

    hours = hours_since(meta.last_contact_date or lead.created_at, now=now)
    if hours is not None:
        for max_hours, points in RECENCY_TIERS:
            if hours <= max_hours:
                score += points
                break

    return max(0, min(MAX_SCORE, score))


def classify_score(score: int) -> tuple[str, str] | None:
    """Return ``(status, reason)`` for a score, or None below the lowest band."""
    for minimum, status, reason in CLASSIFICATION_BANDS:
        if score >= minimum:
            return status, reason
    return None


def score_lead(lead: Lead, now: datetime | None = None) -> LeadScore:
    score = calculate_lead_score(lead, now)
    band = classify_score(score)
    return LeadScore(score=score, category=band[0] if band else CATEGORY_COLD)


class HotLeadDetector:
    """Batch re-scoring of recently active WhatsApp leads."""

    def __init__(
        self,
        store: LeadStore,
        gateway: MessagingGateway,
        *,
        sales_team_phones: tuple[str, ...] = (),
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.sales_team_phones = sales_team_phones

    def _recently_active(self, lead: Lead, since: datetime) -> bool:
        last = parse_iso_datetime(lead.meta.last_contact_date or lead.created_at)
        return last is not None and last >= since

    async def detect(self, now: datetime | None = None) -> list[HotLead]:
        now = now or utc_now()
        since = now - timedelta(days=HOT_LEAD_WINDOW_DAYS)
        hot_leads: list[HotLead] = []
        alerts: list[tuple[Lead, int]] = []

        for lead in self.store.scan_leads(source=WHATSAPP_SOURCE):
            if not self._recently_active(lead, since):
                continue
            score = calculate_lead_score(lead, now)
            lead.meta.lead_score = score
            lead.meta.score_calculated_at = to_iso(now)
            fields = {"meta": lead.meta}

            band = classify_score(score)
            if lead.status == STATUS_CONVERTED:
                band = None
            if band is not None:
                status, reason = band
                fields.update(status=status, status_reason=reason, status_at=to_iso(now))
            self.store.update_lead(lead.id, **fields)

            if band is not None and band[0] == STATUS_HOT:
                hot_leads.append(HotLead(lead_id=lead.id, phone=lead.phone, score=score))
                alerts.append((lead, score))

        for lead, score in alerts:
            await self.alert_sales_team(lead, score=score, now=now)

        logger.info("Hot-lead pass scored leads; %d hot", len(hot_leads))
        return hot_leads

    async def alert_sales_team(
        self,
        lead: Lead,
        *,
        score: int | None,
        now: datetime | None = None,
    ) -> int:
        """Send a hot-lead alert to every sales contact; returns messages sent."""
        if not self.sales_team_phones:
            logger.warning("Hot lead %s detected but no sales team phones configured", lead.id)
            return 0
        message = sales_alert_message(lead, now=now or utc_now(), score=score)
        sent = 0
        for phone in self.sales_team_phones:
            if await send_message(self.gateway, phone, message):
                sent += 1
        return sent
