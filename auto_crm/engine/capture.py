"""Create-or-update a lead from an inbound WhatsApp message."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from auto_crm.constants import INTENT_GENERAL, STATUS_NEW, WHATSAPP_SOURCE
from auto_crm.data.models import Lead, LeadMeta
from auto_crm.data.store import LeadStore
from auto_crm.engine.preferences import extract_intent
from auto_crm.messages import welcome_message
from auto_crm.messaging import MessagingGateway, send_message
from auto_crm.normalization import normalize_phone, to_iso, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureResult:
    lead: Lead
    created: bool


class LeadCapture:
    def __init__(
        self,
        store: LeadStore,
        gateway: MessagingGateway,
        *,
        dealer_name: str = "AutoTrust",
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.dealer_name = dealer_name

    async def capture(
        self,
        phone: str,
        text: str,
        display_name: str | None = None,
        now: datetime | None = None,
    ) -> CaptureResult:
        if not phone or not phone.strip():
            raise ValueError("An inbound message needs a sender phone number.")
        stamp = to_iso(now or utc_now())
        intent = extract_intent(text)

        lead = self.store.find_lead_by_phone(phone)
        if lead is None:
            lead = self.store.insert_lead(Lead(
                id="",
                phone=phone,
                normalized_phone=normalize_phone(phone),
                name=display_name or None,
                source=WHATSAPP_SOURCE,
                intent=intent,
                status=STATUS_NEW,
                status_reason="whatsapp_inbound_message",
                status_at=stamp,
                created_at=stamp,
                meta=LeadMeta(
                    first_message=text,
                    last_message=text,
                    message_count=1,
                    initial_contact_date=stamp,
                    last_contact_date=stamp,
                ),
            ))
            logger.info("Captured new lead %s (%s)", lead.id, intent)
            await send_message(self.gateway, phone, welcome_message(intent, self.dealer_name))
            return CaptureResult(lead=lead, created=True)

        meta = lead.meta
        meta.last_message = text
        meta.last_contact_date = stamp
        meta.message_count += 1
        fields: dict[str, object] = {"meta": meta}
        if intent != INTENT_GENERAL:
            lead.intent = intent
            fields["intent"] = intent
        if display_name and not lead.name:
            lead.name = display_name
            fields["name"] = display_name
        self.store.update_lead(lead.id, **fields)
        return CaptureResult(lead=lead, created=False)
