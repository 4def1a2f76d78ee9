"""Automation master: per-message pipeline and periodic automation runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from auto_crm.config import CRMConfig
from auto_crm.constants import (
    PRICE_INQUIRY_KEYWORDS,
    RESERVATION_KEYWORDS,
    VISIT_INQUIRY_KEYWORDS,
    contains_any,
)
from auto_crm.data.models import Lead
from auto_crm.data.store import CRMStore
from auto_crm.engine.capture import LeadCapture
from auto_crm.engine.effects import (
    NOTIFY_SALES_TEAM,
    SEND_RECOMMENDATIONS,
    SEND_URGENCY,
    EffectDispatcher,
    EffectOutcome,
)
from auto_crm.engine.followups import FollowUpScheduler
from auto_crm.engine.journey import JourneyEngine
from auto_crm.engine.matching import (
    LIVE_MATCH_LIMIT,
    PERSONAL_RECOMMENDATION_LIMIT,
    InventoryMatcher,
)
from auto_crm.engine.preferences import extract_preferences
from auto_crm.engine.reservations import ReservationService
from auto_crm.engine.scoring import HotLeadDetector, score_lead
from auto_crm.messages import (
    price_info_message,
    recommendations_message,
    urgency_message,
    visit_info_message,
)
from auto_crm.messaging import MessagingGateway, send_message
from auto_crm.normalization import to_iso, utc_now
from auto_crm.webhook import parse_webhook

logger = logging.getLogger(__name__)

MODE_HOURLY = "hourly"
MODE_DAILY = "daily"
AUTOMATION_MODES = (MODE_HOURLY, MODE_DAILY)

INTERACTION_WHATSAPP = "whatsapp_message"


class InvalidAutomationModeError(ValueError):
    """Raised for a periodic run mode other than hourly or daily."""


def validate_mode(mode: str) -> str:
    if mode not in AUTOMATION_MODES:
        raise InvalidAutomationModeError(
            f"Unknown automation mode '{mode}'. "
            f"Expected one of: {', '.join(AUTOMATION_MODES)}."
        )
    return mode


@dataclass
class AutomationResult:
    success: bool = True
    lead_id: str | None = None
    created: bool = False
    previous_stage: str | None = None
    stage: str | None = None
    score: int | None = None
    category: str | None = None
    preferences: dict[str, Any] = field(default_factory=dict)
    recommendations: int = 0
    effects: list[EffectOutcome] = field(default_factory=list)
    reservation: dict[str, Any] | None = None
    price_alert: dict[str, Any] | None = None
    replies: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "lead_id": self.lead_id,
            "created": self.created,
            "previous_stage": self.previous_stage,
            "stage": self.stage,
            "score": self.score,
            "category": self.category,
            "preferences": dict(self.preferences),
            "recommendations": self.recommendations,
            "effects": [
                {"kind": o.kind, "ok": o.ok, "detail": o.detail} for o in self.effects
            ],
            "reservation": self.reservation,
            "price_alert": self.price_alert,
            "replies": list(self.replies),
            "error": self.error,
        }


class AutomationMaster:
    """Wires every automation component around one store and one gateway."""

    def __init__(
        self,
        store: CRMStore,
        gateway: MessagingGateway,
        config: CRMConfig | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.config = config or CRMConfig()
        self.capture = LeadCapture(store, gateway, dealer_name=self.config.dealer_name)
        self.journey = JourneyEngine(store)
        self.matcher = InventoryMatcher(store, gateway)
        self.followups = FollowUpScheduler(store, gateway)
        self.hot_leads = HotLeadDetector(
            store, gateway, sales_team_phones=self.config.sales_team_phones,
        )
        self.reservations = ReservationService(store, gateway)
        self.dispatcher = EffectDispatcher(
            store,
            gateway,
            matcher=self.matcher,
            followups=self.followups,
            hot_leads=self.hot_leads,
            dealer_phone=self.config.dealer_phone,
        )

    # ── Inbound messages ───────────────────────────────────────────

    async def process_incoming_message(
        self,
        phone: str,
        text: str,
        display_name: str | None = None,
        now: datetime | None = None,
    ) -> AutomationResult:
        """Run the full inbound pipeline; failures return partial results."""
        now = now or utc_now()
        result = AutomationResult()
        try:
            captured = await self.capture.capture(phone, text, display_name, now)
            lead = captured.lead
            result.lead_id = lead.id
            result.created = captured.created

            preferences = extract_preferences(
                text, budget_multiplier=self.config.budget_multiplier,
            )
            if not preferences.is_empty():
                lead.meta.car_preferences = lead.meta.car_preferences.merge(preferences)
                self.store.update_lead(lead.id, meta=lead.meta)
            result.preferences = lead.meta.car_preferences.to_dict()

            journey = self.journey.advance(lead, INTERACTION_WHATSAPP, text, now)
            result.previous_stage = journey.previous_stage
            result.stage = journey.stage
            result.effects = await self.dispatcher.dispatch(journey.effects, now)
            handled = {o.kind for o in result.effects if o.ok}

            # Effects write through the store; continue from the stored copy.
            lead = self.store.get_lead(lead.id) or lead

            await self._score(lead, result, handled, now)

            if not preferences.is_empty() and SEND_RECOMMENDATIONS not in handled:
                await self._recommend(lead, result, now)
            elif SEND_RECOMMENDATIONS in handled:
                result.recommendations = len(lead.meta.recommended_cars)

            await self._handle_intents(lead, text, result, now)
        except Exception as exc:
            logger.exception("Automation failed for message from %s", phone)
            result.success = False
            result.error = str(exc)
        return result

    async def _score(
        self,
        lead: Lead,
        result: AutomationResult,
        handled: set[str],
        now: datetime,
    ) -> None:
        scored = score_lead(lead, now)
        result.score = scored.score
        result.category = scored.category
        lead.meta.lead_score = scored.score
        lead.meta.score_calculated_at = to_iso(now)
        self.store.update_lead(lead.id, meta=lead.meta)

        if scored.category != "hot":
            return
        if NOTIFY_SALES_TEAM not in handled:
            await self.hot_leads.alert_sales_team(lead, score=scored.score, now=now)
        if SEND_URGENCY not in handled:
            await self._reply(lead, urgency_message(self.config.dealer_phone), result)

    async def _recommend(self, lead: Lead, result: AutomationResult, now: datetime) -> None:
        matches = self.matcher.match(lead.meta.car_preferences, limit=LIVE_MATCH_LIMIT)
        picks = matches[:PERSONAL_RECOMMENDATION_LIMIT]
        if not picks:
            return
        await self._reply(lead, recommendations_message(picks), result)
        self.matcher.record_recommendations(lead, picks, now=now)
        result.recommendations = len(picks)

    async def _handle_intents(
        self,
        lead: Lead,
        text: str,
        result: AutomationResult,
        now: datetime,
    ) -> None:
        if contains_any(text, RESERVATION_KEYWORDS):
            outcome = await self.reservations.handle_request(lead, text, now)
            result.reservation = outcome.to_dict()

        if contains_any(text, PRICE_INQUIRY_KEYWORDS):
            prefs = lead.meta.car_preferences
            await self._reply(lead, price_info_message(prefs.max_budget), result)
            if prefs.max_budget:
                result.price_alert = self.matcher.setup_price_alert(lead, prefs, now=now)

        if contains_any(text, VISIT_INQUIRY_KEYWORDS):
            await self._reply(lead, visit_info_message(self.config.showroom_address), result)

    async def _reply(self, lead: Lead, text: str, result: AutomationResult) -> None:
        if await send_message(self.gateway, lead.phone, text):
            result.replies.append(text)

    # ── Webhook ────────────────────────────────────────────────────

    async def process_webhook(
        self,
        payload: Mapping[str, Any],
        now: datetime | None = None,
    ) -> list[AutomationResult]:
        results: list[AutomationResult] = []
        for message in parse_webhook(payload):
            if not message.text:
                logger.info(
                    "Skipping %s message from %s without text",
                    message.message_type, message.phone,
                )
                continue
            results.append(await self.process_incoming_message(
                message.phone, message.text, message.display_name, now,
            ))
        return results

    # ── Periodic runs ──────────────────────────────────────────────

    async def run_automations(
        self,
        mode: str,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Run the hourly or daily batch; returns per-step counts."""
        validate_mode(mode)
        now = now or utc_now()
        processed: dict[str, int] = {}
        logger.info("Running %s automations", mode)
        try:
            if mode == MODE_DAILY:
                processed["price_alerts"] = await self.matcher.check_price_alerts(now)
                processed["new_arrivals"] = await self.matcher.notify_new_arrivals(now)
                demand = self.matcher.analyze_demand(now)
                processed["demand_makes"] = len(demand.demand_by_make)
                processed["slow_movers"] = len(await self.matcher.detect_slow_movers(now))
                processed["follow_ups"] = len(await self.followups.sweep(now))
                processed["hot_leads"] = len(await self.hot_leads.detect(now))
            else:
                processed["hot_leads"] = len(await self.hot_leads.detect(now))
                processed["follow_ups"] = len(await self.followups.sweep(now))
        except Exception as exc:
            logger.exception("%s automations failed", mode.capitalize())
            return {"success": False, "mode": mode, "processed": processed, "error": str(exc)}
        return {"success": True, "mode": mode, "processed": processed}
