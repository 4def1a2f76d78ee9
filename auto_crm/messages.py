"""Outbound WhatsApp message templates."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from auto_crm.constants import (
    INTENT_PRICING,
    INTENT_PURCHASE,
    INTENT_SELL,
    INTENT_SERVICE,
)
from auto_crm.data.models import Lead, Vehicle
from auto_crm.normalization import hours_since, parse_iso_datetime

FOLLOW_UP_4H_RECOMMENDATION = "4h_recommendation"
FOLLOW_UP_1H_HOT_LEAD = "1h_hot_lead"
FOLLOW_UP_48H_GENERAL = "48h_general"
FOLLOW_UP_WEEKLY = "weekly"

FOLLOW_UP_TEMPLATES: dict[str, str] = {
    FOLLOW_UP_4H_RECOMMENDATION: (
        "Hi! Did you get a chance to check out those car recommendations?\n"
        "Any questions about specs, financing, or scheduling a visit?"
    ),
    FOLLOW_UP_1H_HOT_LEAD: (
        "Still interested in that car?\n"
        "I can hold it for you with just a small deposit.\n"
        "Ready to move forward?"
    ),
    FOLLOW_UP_48H_GENERAL: (
        "Hi! Just following up on your car search.\n"
        "Any new requirements or questions I can help with?"
    ),
    FOLLOW_UP_WEEKLY: (
        "Hope your car search is going well!\n"
        "We have some exciting new arrivals this week.\n"
        "Would you like to see what's new?"
    ),
}


def format_price(value: float | int | None) -> str:
    if value is None:
        return "Not specified"
    return "€" + f"{int(round(value)):,}".replace(",", ".")


def format_mileage(km: int) -> str:
    return f"{km:,}".replace(",", ".") + " km"


def format_time_ago(timestamp: str, *, now: datetime) -> str:
    hours = hours_since(timestamp, now=now)
    if hours is None:
        return "unknown"
    minutes = max(0, int(hours * 60))
    if minutes < 60:
        return f"{minutes} minutes ago"
    if hours < 24:
        return f"{int(hours)} hours ago"
    return f"{int(hours // 24)} days ago"


def format_timestamp(timestamp: str) -> str:
    parsed = parse_iso_datetime(timestamp)
    return parsed.strftime("%d/%m/%Y %H:%M UTC") if parsed else timestamp


def _vehicle_block(index: int, vehicle: Vehicle) -> str:
    return (
        f"{index}. {vehicle.make} {vehicle.model}\n"
        f"💰 {format_price(vehicle.price)}\n"
        f"⛽ {vehicle.fuel} | 🏃 {format_mileage(vehicle.mileage)}\n"
        f"📍 {vehicle.plate}"
    )


# ── Lead-facing ─────────────────────────────────────────────────────


def welcome_message(intent: str, dealer_name: str) -> str:
    greeting = f"👋 Hello! Thanks for reaching out to {dealer_name}. "
    if intent == INTENT_PURCHASE:
        return greeting + (
            "I see you're interested in purchasing a vehicle. I'd be happy to help "
            "you find the perfect car! What type of vehicle are you looking for?"
        )
    if intent == INTENT_SELL:
        return greeting + (
            "Looking to sell or trade your vehicle? Great! We offer competitive "
            "prices. What's your car's make, model, and year?"
        )
    if intent == INTENT_SERVICE:
        return greeting + (
            "Need service or maintenance? Our expert team is here to help. "
            "What service do you need?"
        )
    if intent == INTENT_PRICING:
        return greeting + (
            "Looking for pricing information? I can help you with that. "
            "Which vehicle or service are you interested in?"
        )
    return greeting + (
        "How can we help you today? Whether you're buying, selling, or need "
        "service, we're here to assist! 🚗"
    )


def recommendations_message(vehicles: Iterable[Vehicle]) -> str:
    blocks = [_vehicle_block(i, v) for i, v in enumerate(vehicles, start=1)]
    return (
        "🎯 Perfect matches for you:\n\n"
        + "\n\n".join(blocks)
        + "\n\nWhich one interests you most?\n"
        "Reply with the number (1, 2, or 3) to reserve it for 24h\n"
        'Or say "MORE INFO" for detailed specs'
    )


def urgency_message(dealer_phone: str = "") -> str:
    call_line = f"📞 Call us now: {dealer_phone}\n" if dealer_phone else ""
    return (
        "🔥 Limited Time Opportunity!\n"
        "Our best cars go fast - this one might not last long.\n\n"
        "💡 Pro tip: Schedule a visit today\n"
        f"{call_line}"
        "📍 Or visit our showroom\n\n"
        'Ready to move forward? Reply "VISIT" to schedule immediately!'
    )


def re_engagement_message(lead: Lead) -> str:
    name = f" {lead.name}" if lead.name else ""
    return (
        f"Hi{name}! It's been a while since we talked about your next car.\n"
        "Our stock changes every week. Want me to send you the latest matches?"
    )


def targeted_offer_message(vehicle: Vehicle, suggestion: dict[str, Any] | None) -> str:
    price_line = f"💰 {format_price(vehicle.price)}"
    if suggestion:
        price_line = (
            f"💰 {format_price(suggestion.get('suggested_price'))} "
            f"(was {format_price(vehicle.price)})"
        )
    return (
        "🎯 Perfect Match for You!\n"
        f"{vehicle.display_name}\n"
        f"{price_line}\n"
        f"📍 {vehicle.plate}\n"
        f"⛽ {vehicle.fuel} | 🏃 {format_mileage(vehicle.mileage)} | 🎨 {vehicle.color}\n\n"
        "This matches your preferences perfectly!\n"
        f'Reply "RESERVE {vehicle.plate}" to hold it for 24h.'
    )


def reservation_confirmed_message(vehicle: Vehicle, reserved_until: str, hours: int) -> str:
    return (
        "✅ Car Reserved Successfully!\n"
        f"{vehicle.make} {vehicle.model}\n"
        f"💰 {format_price(vehicle.price)}\n"
        f"📍 {vehicle.plate}\n\n"
        f"🔒 Reserved for {hours} hours\n"
        f"⏰ Until: {format_timestamp(reserved_until)}\n\n"
        "Next steps:\n"
        "📞 Call us to schedule a viewing\n"
        "💳 Arrange financing (if needed)\n"
        "📝 Prepare documentation"
    )


def reservation_unavailable_message(vehicle: Vehicle) -> str:
    return (
        f"Sorry, the {vehicle.make} {vehicle.model} ({vehicle.plate}) is already "
        "reserved by another customer. I'll let you know if it becomes available."
    )


def reservation_help_message() -> str:
    return (
        "Happy to reserve a car for you! Reply with the number of one of my "
        "recommendations (1, 2, or 3) or the car's plate (e.g. AA-12-BC)."
    )


def price_info_message(budget: int | None = None) -> str:
    budget_line = (
        f"I'll keep an eye out for cars under {format_price(budget)} and alert you.\n\n"
        if budget else ""
    )
    return (
        "💰 Great question about pricing!\n\n"
        "Our cars are competitively priced with:\n"
        "✅ Transparent pricing (no hidden fees)\n"
        "✅ Financing options available\n"
        "✅ Trade-in evaluations\n"
        "✅ Extended warranties\n\n"
        f"{budget_line}"
        "Want a personalized quote?"
    )


def visit_info_message(address: str = "") -> str:
    return (
        "🏢 Perfect! We'd love to show you our cars.\n\n"
        f"📍 Showroom Address:\n{address or 'Ask us for directions'}\n\n"
        "🕒 Opening Hours:\n"
        "Mon-Fri: 9:00-19:00\n"
        "Saturday: 9:00-17:00\n"
        "Sunday: 10:00-16:00\n\n"
        "What day and time works best for you?"
    )


def new_arrival_message(vehicle: Vehicle) -> str:
    return (
        "🆕 Just arrived and it matches what you're looking for!\n\n"
        f"{vehicle.display_name}\n"
        f"💰 {format_price(vehicle.price)}\n"
        f"⛽ {vehicle.fuel} | 🏃 {format_mileage(vehicle.mileage)}\n"
        f"📍 {vehicle.plate}\n\n"
        f'Reply "RESERVE {vehicle.plate}" to hold it for 24h.'
    )


def price_alert_message(vehicle: Vehicle, max_budget: int | None) -> str:
    budget_line = f" (your budget: {format_price(max_budget)})" if max_budget else ""
    return (
        "🔔 Price Alert!\n"
        f"{vehicle.display_name} is now {format_price(vehicle.price)}{budget_line}\n"
        f"📍 {vehicle.plate}\n\n"
        'Reply "BOOK" to reserve it!'
    )


# ── Staff-facing ────────────────────────────────────────────────────


def sales_alert_message(lead: Lead, *, now: datetime, score: int | None = None) -> str:
    meta = lead.meta
    prefs = meta.car_preferences
    score_text = f"{score}/100" if score is not None else "pending"
    last_message = meta.last_message or meta.first_message
    last_contact = meta.last_contact_date or lead.created_at
    return (
        "🔥 HOT LEAD ALERT!\n"
        f"🆔 {lead.id}\n"
        f"📞 {lead.phone}\n"
        f"📧 {lead.email or 'No email'}\n"
        f"🎯 Score: {score_text}\n"
        f'💬 "{last_message}"\n'
        f"🚗 Interested in: {prefs.make or 'Various cars'}\n"
        f"💰 Budget: {format_price(prefs.max_budget)}\n"
        f"⏰ Last contact: {format_time_ago(last_contact, now=now)}\n\n"
        "Action needed: Call within 1 hour!"
    )
