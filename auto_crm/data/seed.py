"""Demo showroom inventory used for fresh local SQLite databases."""

from __future__ import annotations

from auto_crm.constants import IN_PREPARATION_STATUS, ON_DISPLAY_STATUS, SOLD_STATUS
from auto_crm.data.models import Vehicle
from auto_crm.data.store import VehicleStore

DEMO_VEHICLES: tuple[Vehicle, ...] = (
    Vehicle(
        id="car-001", plate="AA-12-BC", make="BMW", model="320d", version="Sport Line",
        price=18500, fuel="Diesel", transmission="Automática", body_type="Sedan",
        color="Preto", mileage=98000, status=ON_DISPLAY_STATUS,
        days_in_stock=35, demand_count=4,
    ),
    Vehicle(
        id="car-002", plate="45-XY-67", make="BMW", model="X1", version="sDrive18d",
        price=26900, fuel="Diesel", transmission="Automática", body_type="SUV",
        color="Branco", mileage=61000, status=ON_DISPLAY_STATUS,
        days_in_stock=12, demand_count=4,
    ),
    Vehicle(
        id="car-003", plate="11-22-ZZ", make="Mercedes-Benz", model="A 180",
        version="Style", price=21400, fuel="Gasolina", transmission="Manual",
        body_type="Hatchback", color="Cinzento", mileage=54000,
        status=ON_DISPLAY_STATUS, days_in_stock=140, demand_count=1,
    ),
    Vehicle(
        id="car-004", plate="BB-34-CD", make="Volkswagen", model="Golf Variant",
        version="1.6 TDI", price=14900, fuel="Diesel", transmission="Manual",
        body_type="Carrinha", color="Azul", mileage=132000,
        status=ON_DISPLAY_STATUS, days_in_stock=200, demand_count=0,
    ),
    Vehicle(
        id="car-005", plate="78-GH-90", make="Toyota", model="C-HR", version="1.8 Hybrid",
        price=23900, fuel="Hibrido (Gasolina)", transmission="Automática",
        body_type="SUV", color="Vermelho", mileage=47000,
        status=ON_DISPLAY_STATUS, days_in_stock=20, demand_count=2,
    ),
    Vehicle(
        id="car-006", plate="CC-56-EF", make="Renault", model="Zoe", version="R110",
        price=15900, fuel="Elétrico", transmission="Automática", body_type="Hatchback",
        color="Branco", mileage=38000, status=ON_DISPLAY_STATUS,
        days_in_stock=95, demand_count=0,
    ),
    Vehicle(
        id="car-007", plate="12-JK-34", make="Peugeot", model="308 SW", version="1.5 BlueHDi",
        price=17200, fuel="Diesel", transmission="Manual", body_type="Carrinha",
        color="Cinzento", mileage=88000, status=IN_PREPARATION_STATUS,
        days_in_stock=5, demand_count=0,
    ),
    Vehicle(
        id="car-008", plate="DD-78-GH", make="Audi", model="A3 Sportback", version="30 TDI",
        price=22500, fuel="Diesel", transmission="Automática", body_type="Hatchback",
        color="Preto", mileage=72000, status=SOLD_STATUS, is_active=False,
        days_in_stock=60, demand_count=3,
    ),
)


def seed_demo_data(store: VehicleStore) -> int:
    """Insert the demo inventory; returns the number of vehicles written."""
    store.upsert_vehicles(DEMO_VEHICLES)
    return len(DEMO_VEHICLES)
