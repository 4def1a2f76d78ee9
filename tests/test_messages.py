"""Tests for outbound message templates and their formatting helpers."""

from __future__ import annotations

from datetime import timedelta

from auto_crm.constants import INTENT_PURCHASE, INTENT_SELL
from auto_crm.data.models import CarPreferences, Lead, LeadMeta
from auto_crm.data.seed import DEMO_VEHICLES
from auto_crm.messages import (
    format_mileage,
    format_price,
    format_time_ago,
    recommendations_message,
    sales_alert_message,
    targeted_offer_message,
    welcome_message,
)
from auto_crm.normalization import to_iso


class TestFormatting:
    def test_price_uses_euro_thousands_dots(self):
        assert format_price(18500) == "€18.500"
        assert format_price(12665.4) == "€12.665"
        assert format_price(None) == "Not specified"

    def test_mileage(self):
        assert format_mileage(98000) == "98.000 km"

    def test_time_ago(self, now):
        assert format_time_ago(to_iso(now - timedelta(minutes=25, seconds=10)), now=now) == "25 minutes ago"
        assert format_time_ago(to_iso(now - timedelta(hours=5)), now=now) == "5 hours ago"
        assert format_time_ago(to_iso(now - timedelta(days=3)), now=now) == "3 days ago"
        assert format_time_ago("", now=now) == "unknown"


class TestTemplates:
    def test_welcome_depends_on_intent(self):
        assert "purchasing a vehicle" in welcome_message(INTENT_PURCHASE, "AutoTrust")
        assert "sell or trade" in welcome_message(INTENT_SELL, "AutoTrust")
        assert "Thanks for reaching out to Garagem" in welcome_message("general_inquiry", "Garagem")

    def test_recommendations_are_numbered(self):
        text = recommendations_message(DEMO_VEHICLES[:3])
        assert "1. BMW 320d" in text
        assert "3. Mercedes-Benz A 180" in text
        assert "€26.900" in text

    def test_targeted_offer_shows_discount(self):
        golf = DEMO_VEHICLES[3]
        suggestion = {"suggested_price": 12665.0, "discount_percentage": 15}
        text = targeted_offer_message(golf, suggestion)
        assert "€12.665" in text
        assert 'RESERVE BB-34-CD' in text

    def test_sales_alert(self, now):
        lead = Lead(
            id="lead-1",
            phone="351912345678",
            meta=LeadMeta(
                last_message="need it today",
                last_contact_date=to_iso(now - timedelta(hours=2)),
                car_preferences=CarPreferences(make="Bmw", max_budget=20000),
            ),
        )
        text = sales_alert_message(lead, now=now, score=92)
        assert "Score: 92/100" in text
        assert '"need it today"' in text
        assert "Interested in: Bmw" in text
        assert "Budget: €20.000" in text
        assert "2 hours ago" in text
        assert "No email" in text
