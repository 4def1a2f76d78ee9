"""Time-based follow-up rules and scheduled follow-up sequences.

Every rule carries an idempotency tag stored in ``automated_follow_ups``, so a
rule fires at most once per lead no matter how often the sweep runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from auto_crm.constants import (
    STAGE_HOT_LEAD,
    STAGE_RECOMMENDATIONS_SENT,
    STATUS_CONVERTED,
    WHATSAPP_SOURCE,
)
from auto_crm.data.models import Lead
from auto_crm.data.store import LeadStore
from auto_crm.messages import (
    FOLLOW_UP_1H_HOT_LEAD,
    FOLLOW_UP_4H_RECOMMENDATION,
    FOLLOW_UP_48H_GENERAL,
    FOLLOW_UP_TEMPLATES,
    FOLLOW_UP_WEEKLY,
)
from auto_crm.messaging import MessagingGateway, send_message
from auto_crm.normalization import hours_since, parse_iso_datetime, to_iso, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FollowUpRule:
    tag: str
    min_hours: float
    stage: str | None = None


# Priority order: only the first matching rule fires per lead per sweep.
FOLLOW_UP_RULES: tuple[FollowUpRule, ...] = (
    FollowUpRule(FOLLOW_UP_4H_RECOMMENDATION, 4, STAGE_RECOMMENDATIONS_SENT),
    FollowUpRule(FOLLOW_UP_1H_HOT_LEAD, 1, STAGE_HOT_LEAD),
    FollowUpRule(FOLLOW_UP_48H_GENERAL, 48),
    FollowUpRule(FOLLOW_UP_WEEKLY, 168),
)

# sequence -> ((delay minutes, message), ...)
FOLLOW_UP_SEQUENCES: dict[str, tuple[tuple[int, str], ...]] = {
    "purchase_intent": (
        (0, "Thank you for your interest! Would you like to schedule a viewing of the cars we discussed?"),
        (1440, "Hi! Just checking if you had any questions about the vehicles I recommended yesterday?"),
        (4320, "We have special conditions on selected vehicles this week. Interested?"),
    ),
    "price_inquiry": (
        (30, "I can provide detailed pricing and financing options. What's your preferred budget range?"),
        (720, "We have flexible payment options available. Would you like to discuss financing?"),
    ),
    "viewing_request": (
        (15, "Perfect! Our showroom is open Mon-Sat 9:00-18:00. What time works best for you?"),
        (60, "Please confirm your preferred time slot for the viewing."),
    ),
}


@dataclass(frozen=True)
class FollowUpSent:
    lead_id: str
    tag: str


def hours_since_last_interaction(lead: Lead, now: datetime) -> float | None:
    meta = lead.meta
    return hours_since(
        meta.last_interaction or meta.last_contact_date or lead.created_at,
        now=now,
    )


def select_follow_up(lead: Lead, now: datetime) -> FollowUpRule | None:
    """First rule whose stage, elapsed-time and unfired-tag conditions hold."""
    hours = hours_since_last_interaction(lead, now)
    if hours is None:
        return None
    meta = lead.meta
    for rule in FOLLOW_UP_RULES:
        if rule.stage is not None and meta.journey_stage != rule.stage:
            continue
        if hours >= rule.min_hours and not meta.has_fired(rule.tag):
            return rule
    return None


class FollowUpScheduler:
    def __init__(self, store: LeadStore, gateway: MessagingGateway) -> None:
        self.store = store
        self.gateway = gateway

    async def sweep(self, now: datetime | None = None) -> list[FollowUpSent]:
        now = now or utc_now()
        fired: list[FollowUpSent] = []
        for lead in self.store.scan_leads(
            source=WHATSAPP_SOURCE,
            exclude_status=STATUS_CONVERTED,
        ):
            rule = select_follow_up(lead, now)
            if rule is not None:
                await send_message(self.gateway, lead.phone, FOLLOW_UP_TEMPLATES[rule.tag])
                lead.meta.mark_fired(rule.tag)
                self.store.update_lead(lead.id, meta=lead.meta)
                fired.append(FollowUpSent(lead_id=lead.id, tag=rule.tag))
            await self.send_due_steps(lead, now=now)
        logger.info("Follow-up sweep fired %d rules", len(fired))
        return fired

    # ── Sequences ──────────────────────────────────────────────────

    def setup_sequence(
        self,
        lead: Lead,
        kind: str,
        *,
        now: datetime | None = None,
    ) -> list[dict[str, object]]:
        """Replace the lead's follow-up sequence with a fresh ``kind`` sequence."""
        steps = FOLLOW_UP_SEQUENCES.get(kind)
        if steps is None:
            raise ValueError(
                f"Unknown follow-up sequence '{kind}'. "
                f"Expected one of: {', '.join(FOLLOW_UP_SEQUENCES)}."
            )
        now = now or utc_now()
        lead.meta.follow_up_sequence = [
            {
                "sequence": kind,
                "step": index,
                "message": message,
                "scheduled_for": to_iso(now + timedelta(minutes=delay)),
                "sent": False,
            }
            for index, (delay, message) in enumerate(steps, start=1)
        ]
        self.store.update_lead(
            lead.id,
            meta=lead.meta,
            status_reason="follow_up_sequence_scheduled",
            status_at=to_iso(now),
        )
        return lead.meta.follow_up_sequence

    async def send_due_steps(self, lead: Lead, *, now: datetime | None = None) -> int:
        """Send every unsent step scheduled at or before ``now``; returns steps sent."""
        now = now or utc_now()
        sent = 0
        for step in lead.meta.follow_up_sequence:
            if step.get("sent"):
                continue
            due = parse_iso_datetime(step.get("scheduled_for"))
            if due is None or due > now:
                continue
            await send_message(self.gateway, lead.phone, str(step.get("message", "")))
            step["sent"] = True
            step["sent_at"] = to_iso(now)
            sent += 1
        if sent:
            self.store.update_lead(lead.id, meta=lead.meta)
        return sent
