"""Customer journey state machine.

Each call appends one interaction, applies at most one transition, persists
stage and history in a single lead update and returns the outbound effects
for the stage that was entered.  Effects are executed separately by
:class:`auto_crm.engine.effects.EffectDispatcher`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from auto_crm.constants import (
    JOURNEY_PRICE_KEYWORDS,
    JOURNEY_STAGES,
    JOURNEY_VISIT_KEYWORDS,
    STAGE_CONVERTED,
    STAGE_FOLLOW_UP_ENGAGED,
    STAGE_HOT_LEAD,
    STAGE_INITIAL_INTEREST,
    STAGE_PREFERENCES_GATHERED,
    STAGE_PURCHASE_INTENT,
    STAGE_RECOMMENDATIONS_SENT,
    STATUS_CONVERTED,
    contains_any,
)
from auto_crm.data.models import CarPreferences, Interaction, Lead
from auto_crm.data.store import LeadStore
from auto_crm.engine.effects import Effect, stage_entry_effects
from auto_crm.normalization import to_iso, utc_now

logger = logging.getLogger(__name__)

ENGAGED_INTERACTION_COUNT = 3
PURCHASE_INTERACTION_COUNT = 8
MIN_PREFERENCE_FIELDS = 2


@dataclass(frozen=True)
class JourneyResult:
    lead_id: str
    previous_stage: str
    stage: str
    effects: tuple[Effect, ...] = field(default_factory=tuple)

    @property
    def changed(self) -> bool:
        return self.stage != self.previous_stage


def _history_mentions_price(interactions: list[Interaction]) -> bool:
    return any(contains_any(i.content, JOURNEY_PRICE_KEYWORDS) for i in interactions)


def next_stage(
    current: str,
    preferences: CarPreferences,
    interactions: list[Interaction],
    latest: Interaction,
) -> str:
    """Return the stage after ``latest`` (already included in ``interactions``)."""
    count = len(interactions)

    if current == STAGE_INITIAL_INTEREST:
        if preferences.populated_count() > MIN_PREFERENCE_FIELDS:
            return STAGE_PREFERENCES_GATHERED
        if count >= ENGAGED_INTERACTION_COUNT:
            return STAGE_FOLLOW_UP_ENGAGED
    elif current == STAGE_PREFERENCES_GATHERED:
        return STAGE_RECOMMENDATIONS_SENT
    elif current == STAGE_RECOMMENDATIONS_SENT:
        if _history_mentions_price(interactions):
            return STAGE_HOT_LEAD
        if count >= ENGAGED_INTERACTION_COUNT:
            return STAGE_FOLLOW_UP_ENGAGED
    elif current == STAGE_FOLLOW_UP_ENGAGED:
        if _history_mentions_price(interactions):
            return STAGE_HOT_LEAD
        if count >= PURCHASE_INTERACTION_COUNT:
            return STAGE_PURCHASE_INTENT
    elif current == STAGE_HOT_LEAD:
        if contains_any(latest.content, JOURNEY_VISIT_KEYWORDS):
            return STAGE_PURCHASE_INTENT
    return current


class JourneyEngine:
    def __init__(self, store: LeadStore) -> None:
        self.store = store

    def _load(self, lead_id: str) -> Lead:
        lead = self.store.get_lead(lead_id)
        if lead is None:
            raise ValueError(f"Lead '{lead_id}' not found.")
        return lead

    def advance(
        self,
        lead: Lead,
        interaction_type: str,
        content: str,
        now: datetime | None = None,
    ) -> JourneyResult:
        """Record an interaction on ``lead`` (mutated in place) and transition."""
        timestamp = to_iso(now or utc_now())
        meta = lead.meta
        previous = meta.journey_stage
        latest = Interaction(
            type=interaction_type,
            content=content,
            timestamp=timestamp,
            stage=previous,
        )
        meta.interactions.append(latest)
        stage = next_stage(previous, meta.car_preferences, meta.interactions, latest)
        meta.journey_stage = stage
        meta.last_interaction = timestamp
        self.store.update_lead(lead.id, meta=meta)

        if stage == previous:
            return JourneyResult(lead.id, previous, stage)
        logger.info("Lead %s moved %s -> %s", lead.id, previous, stage)
        return JourneyResult(lead.id, previous, stage, stage_entry_effects(lead, stage))

    def progress(
        self,
        lead_id: str,
        interaction_type: str,
        content: str,
        now: datetime | None = None,
    ) -> JourneyResult:
        return self.advance(self._load(lead_id), interaction_type, content, now)

    def move_to_stage(
        self,
        lead_id: str,
        stage: str,
        now: datetime | None = None,
    ) -> JourneyResult:
        """Manually place a lead in ``stage`` (e.g. staff marking a sale)."""
        if stage not in JOURNEY_STAGES:
            raise ValueError(
                f"Unknown journey stage '{stage}'. "
                f"Expected one of: {', '.join(JOURNEY_STAGES)}."
            )
        lead = self._load(lead_id)
        previous = lead.meta.journey_stage
        if stage == previous:
            return JourneyResult(lead.id, previous, stage)

        timestamp = to_iso(now or utc_now())
        lead.meta.journey_stage = stage
        fields: dict[str, object] = {"meta": lead.meta}
        if stage == STAGE_CONVERTED:
            fields.update(
                status=STATUS_CONVERTED,
                status_reason="marked_converted",
                status_at=timestamp,
            )
        self.store.update_lead(lead.id, **fields)
        logger.info("Lead %s manually moved %s -> %s", lead.id, previous, stage)
        return JourneyResult(lead.id, previous, stage, stage_entry_effects(lead, stage))
