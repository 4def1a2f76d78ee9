"""Outbound effects emitted on journey stage entry, and their dispatcher."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from auto_crm.constants import (
    STAGE_DORMANT,
    STAGE_HOT_LEAD,
    STAGE_PREFERENCES_GATHERED,
    STAGE_PURCHASE_INTENT,
)
from auto_crm.data.models import Lead
from auto_crm.messages import (
    re_engagement_message,
    recommendations_message,
    urgency_message,
)
from auto_crm.messaging import MessagingGateway, send_message
from auto_crm.normalization import utc_now

if TYPE_CHECKING:
    from auto_crm.data.store import CRMStore
    from auto_crm.engine.followups import FollowUpScheduler
    from auto_crm.engine.matching import InventoryMatcher
    from auto_crm.engine.scoring import HotLeadDetector

logger = logging.getLogger(__name__)

SEND_RECOMMENDATIONS = "send_recommendations"
NOTIFY_SALES_TEAM = "notify_sales_team"
SEND_URGENCY = "send_urgency"
SCHEDULE_FOLLOW_UP = "schedule_follow_up"
RE_ENGAGE = "re_engage"


@dataclass(frozen=True)
class Effect:
    kind: str
    lead_id: str
    phone: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EffectOutcome:
    kind: str
    lead_id: str
    ok: bool
    detail: str = ""


def stage_entry_effects(lead: Lead, stage: str) -> tuple[Effect, ...]:
    if stage == STAGE_PREFERENCES_GATHERED:
        return (Effect(SEND_RECOMMENDATIONS, lead.id, lead.phone, {"limit": 3}),)
    if stage == STAGE_HOT_LEAD:
        return (
            Effect(NOTIFY_SALES_TEAM, lead.id, lead.phone, {"reason": "price_inquiry"}),
            Effect(SEND_URGENCY, lead.id, lead.phone),
        )
    if stage == STAGE_PURCHASE_INTENT:
        return (Effect(SCHEDULE_FOLLOW_UP, lead.id, lead.phone, {"sequence": "purchase_intent"}),)
    if stage == STAGE_DORMANT:
        return (Effect(RE_ENGAGE, lead.id, lead.phone),)
    return ()


class EffectDispatcher:
    """Executes effects one by one; a failing effect is logged and skipped."""

    def __init__(
        self,
        store: CRMStore,
        gateway: MessagingGateway,
        *,
        matcher: InventoryMatcher,
        followups: FollowUpScheduler,
        hot_leads: HotLeadDetector,
        dealer_phone: str = "",
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.matcher = matcher
        self.followups = followups
        self.hot_leads = hot_leads
        self.dealer_phone = dealer_phone
        self._handlers: dict[str, Callable[[Effect, datetime], Awaitable[str]]] = {
            SEND_RECOMMENDATIONS: self._send_recommendations,
            NOTIFY_SALES_TEAM: self._notify_sales_team,
            SEND_URGENCY: self._send_urgency,
            SCHEDULE_FOLLOW_UP: self._schedule_follow_up,
            RE_ENGAGE: self._re_engage,
        }

    async def dispatch(
        self,
        effects: tuple[Effect, ...] | list[Effect],
        now: datetime | None = None,
    ) -> list[EffectOutcome]:
        now = now or utc_now()
        outcomes: list[EffectOutcome] = []
        for effect in effects:
            handler = self._handlers.get(effect.kind)
            if handler is None:
                logger.warning("No handler for effect %s", effect.kind)
                outcomes.append(EffectOutcome(effect.kind, effect.lead_id, False, "unknown effect"))
                continue
            try:
                detail = await handler(effect, now)
            except Exception as exc:
                logger.exception("Effect %s failed for lead %s", effect.kind, effect.lead_id)
                outcomes.append(EffectOutcome(effect.kind, effect.lead_id, False, str(exc)))
                continue
            outcomes.append(EffectOutcome(effect.kind, effect.lead_id, True, detail))
        return outcomes

    def _lead(self, effect: Effect) -> Lead:
        lead = self.store.get_lead(effect.lead_id)
        if lead is None:
            raise ValueError(f"Lead '{effect.lead_id}' not found.")
        return lead

    async def _send_recommendations(self, effect: Effect, now: datetime) -> str:
        lead = self._lead(effect)
        vehicles = self.matcher.recommend_for(lead, limit=int(effect.payload.get("limit", 3)))
        if not vehicles:
            return "no matches"
        await send_message(self.gateway, effect.phone, recommendations_message(vehicles))
        self.matcher.record_recommendations(lead, vehicles, now=now)
        return f"{len(vehicles)} recommended"

    async def _notify_sales_team(self, effect: Effect, now: datetime) -> str:
        lead = self._lead(effect)
        sent = await self.hot_leads.alert_sales_team(lead, score=None, now=now)
        return f"{sent} alerts"

    async def _send_urgency(self, effect: Effect, now: datetime) -> str:
        await send_message(self.gateway, effect.phone, urgency_message(self.dealer_phone))
        return "sent"

    async def _schedule_follow_up(self, effect: Effect, now: datetime) -> str:
        lead = self._lead(effect)
        kind = str(effect.payload.get("sequence", "purchase_intent"))
        self.followups.setup_sequence(lead, kind, now=now)
        sent = await self.followups.send_due_steps(lead, now=now)
        return f"{kind} sequence scheduled, {sent} sent"

    async def _re_engage(self, effect: Effect, now: datetime) -> str:
        lead = self._lead(effect)
        await send_message(self.gateway, effect.phone, re_engagement_message(lead))
        return "sent"
