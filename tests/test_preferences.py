"""Tests for keyword-based preference, budget and intent extraction."""

from __future__ import annotations

import pytest

from auto_crm.constants import (
    INTENT_FINANCING,
    INTENT_GENERAL,
    INTENT_PRICING,
    INTENT_PURCHASE,
    INTENT_SELL,
    INTENT_SERVICE,
    INTENT_VIEWING,
)
from auto_crm.engine.preferences import extract_budget, extract_intent, extract_preferences


class TestExtractPreferences:
    def test_make_and_short_budget(self):
        prefs = extract_preferences("I want a BMW under 20")
        assert prefs.make == "Bmw"
        assert prefs.max_budget == 20000
        assert prefs.to_dict() == {"make": "Bmw", "maxBudget": 20000}

    def test_no_keywords_yields_empty_record(self):
        prefs = extract_preferences("hello there, good morning")
        assert prefs.is_empty()
        assert prefs.to_dict() == {}

    def test_empty_text(self):
        assert extract_preferences("").is_empty()

    def test_full_sentence(self):
        prefs = extract_preferences("Looking for a Toyota hybrid automatic SUV até 25 mil")
        assert prefs.make == "Toyota"
        assert prefs.fuel == "Hibrido (Gasolina)"
        assert prefs.transmission == "Automática"
        assert prefs.body_type == "SUV"
        assert prefs.max_budget == 25000
        assert prefs.populated_count() == 5

    def test_portuguese_vocabulary(self):
        prefs = extract_preferences("procuro carrinha gasolina manual")
        assert prefs.fuel == "Gasolina"
        assert prefs.transmission == "Manual"
        assert prefs.body_type == "Carrinha"

    def test_first_brand_wins(self):
        assert extract_preferences("bmw or audi?").make == "Bmw"

    def test_deterministic(self):
        text = "Mercedes diesel under 30k"
        assert extract_preferences(text) == extract_preferences(text)


class TestExtractBudget:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("under 20", 20000),
            ("max 18000", 18000),
            ("budget €15.000", 15000),
            ("around 12k", 12000),
            ("até 25 mil euros", 25000),
            ("20000€ at most", 20000),
            ("up to 20", 20000),
            ("Up  to €18k", 18000),
            ("budget 15 diesel", 15000),
            ("my budget is 12", 12000),
            ("budget: 9.500", 9500),
            ("20 000 €", 20000),
            ("até 17 500 euros", 17500),
        ],
    )
    def test_budget_forms(self, text: str, expected: int):
        assert extract_budget(text) == expected

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("BMW 20", 20000),
            ("something around 15.000 please", 15000),
            ("a golf for 14 900?", 14900),
        ],
    )
    def test_lone_number_is_a_budget(self, text: str, expected: int):
        assert extract_budget(text) == expected

    @pytest.mark.parametrize(
        "text",
        [
            "I have 2 kids and 1 dog",
            "a 2018 BMW 320d",
            "reserve AA-12-BC",
            "reserve 45-XY-67",
            "less than 80 000 km",
            "can you hold it for 48 hours?",
            "the 1.6 engine",
        ],
    )
    def test_numbers_that_are_not_budgets(self, text: str):
        assert extract_budget(text) is None

    def test_qualified_amount_beats_earlier_lone_number(self):
        assert extract_budget("BMW 30 or so, max 25") == 25000

    def test_multiplier_is_configurable(self):
        assert extract_budget("under 30", multiplier=500) == 15000

    def test_full_amount_not_multiplied(self):
        assert extract_budget("under 20000", multiplier=1000) == 20000

    def test_no_number(self):
        assert extract_budget("cheap please") is None


class TestExtractIntent:
    @pytest.mark.parametrize(
        ("text", "intent"),
        [
            ("I want to buy a car", INTENT_PURCHASE),
            ("I'd like to sell my Golf", INTENT_SELL),
            ("need a repair on my clutch", INTENT_SERVICE),
            ("what is the price?", INTENT_PRICING),
            ("do you offer financing", INTENT_FINANCING),
            ("can I book a test drive", INTENT_VIEWING),
            ("hello", INTENT_GENERAL),
        ],
    )
    def test_intents(self, text: str, intent: str):
        assert extract_intent(text) == intent

    def test_first_group_wins(self):
        assert extract_intent("what's the price if I buy today") == INTENT_PURCHASE
