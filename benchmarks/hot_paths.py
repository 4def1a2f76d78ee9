#!/usr/bin/env python3
"""Performance benchmark for AutoCRM matching and batch automation hot paths."""

from __future__ import annotations

import argparse
import asyncio
import os
import tempfile
import time
from datetime import timedelta

from auto_crm.constants import INTENT_PURCHASE, ON_DISPLAY_STATUS
from auto_crm.data.models import CarPreferences, Lead, LeadMeta, Vehicle
from auto_crm.data.store import SqliteStore
from auto_crm.engine.followups import FollowUpScheduler
from auto_crm.engine.matching import InventoryMatcher
from auto_crm.engine.scoring import HotLeadDetector
from auto_crm.messaging import LoggingGateway
from auto_crm.normalization import to_iso, utc_now

MAKES = ["BMW", "Mercedes-Benz", "Volkswagen", "Toyota", "Renault"]
MODELS = ["320d", "A 180", "Golf", "C-HR", "Clio"]
FUELS = ["Diesel", "Gasolina", "Diesel", "Hibrido (Gasolina)", "Gasolina"]
TRANSMISSIONS = ["Automática", "Manual"]


def make_vehicle(i: int) -> Vehicle:
    return Vehicle(
        id=f"BM-{i:07d}",
        plate=f"{i % 100:02d}-{chr(65 + i % 26)}{chr(65 + (i // 26) % 26)}-{(i // 676) % 100:02d}",
        make=MAKES[i % 5],
        model=MODELS[i % 5],
        price=8_000 + (i % 200) * 150,
        fuel=FUELS[i % 5],
        transmission=TRANSMISSIONS[i % 2],
        mileage=5_000 + (i % 120_000),
        status=ON_DISPLAY_STATUS,
        days_in_stock=i % 240,
        demand_count=i % 6,
    )


def make_lead(i: int) -> Lead:
    now = utc_now()
    stamp = to_iso(now - timedelta(hours=i % 200))
    return Lead(
        id=f"bench-lead-{i:06d}",
        phone=f"3519{i:08d}",
        intent=INTENT_PURCHASE,
        created_at=stamp,
        meta=LeadMeta(
            car_preferences=CarPreferences(make=MAKES[i % 5], max_budget=15_000 + (i % 10) * 2_000),
            message_count=1 + i % 6,
            last_message="need it today" if i % 7 == 0 else "looking for a car",
            last_contact_date=stamp,
        ),
    )


def _make_store(vehicles: int, leads: int = 0) -> SqliteStore:
    store = SqliteStore(":memory:")
    store.upsert_vehicles(make_vehicle(i) for i in range(vehicles))
    for i in range(leads):
        store.insert_lead(make_lead(i))
    return store


# ── Benchmarks ────────────────────────────────────────────────────────


def bench_disk_upsert(records: int) -> tuple[float, float]:
    vehicles = [make_vehicle(i) for i in range(records)]
    with tempfile.NamedTemporaryFile(prefix="autocrm-bench-", suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    try:
        store = SqliteStore(db_path)
        start = time.perf_counter()
        store.upsert_vehicles(vehicles)
        elapsed = time.perf_counter() - start
        store.close()
    finally:
        for suffix in ("", "-wal", "-shm"):
            try:
                os.remove(db_path + suffix)
            except FileNotFoundError:
                pass

    return elapsed, records / max(elapsed, 1e-9)


def bench_match(records: int, repeats: int) -> tuple[float, float]:
    matcher = InventoryMatcher(_make_store(records), LoggingGateway())
    start = time.perf_counter()
    for i in range(repeats):
        matcher.match(CarPreferences(make=MAKES[i % 5], max_budget=30_000, fuel=FUELS[i % 5]))
    elapsed = time.perf_counter() - start
    return elapsed, (elapsed / max(repeats, 1)) * 1000


def bench_demand_analysis(records: int, leads: int) -> tuple[float, int]:
    matcher = InventoryMatcher(_make_store(records, leads), LoggingGateway())
    start = time.perf_counter()
    report = matcher.analyze_demand()
    elapsed = time.perf_counter() - start
    return elapsed, report.vehicles_updated


async def bench_follow_up_sweep(leads: int) -> tuple[float, int]:
    scheduler = FollowUpScheduler(_make_store(0, leads), LoggingGateway())
    start = time.perf_counter()
    fired = await scheduler.sweep()
    elapsed = time.perf_counter() - start
    return elapsed, len(fired)


async def bench_hot_leads(leads: int) -> tuple[float, int]:
    detector = HotLeadDetector(
        _make_store(0, leads), LoggingGateway(), sales_team_phones=("351900000000",),
    )
    start = time.perf_counter()
    hot = await detector.detect()
    elapsed = time.perf_counter() - start
    return elapsed, len(hot)


# ── Main ──────────────────────────────────────────────────────────────


async def main() -> None:
    parser = argparse.ArgumentParser(description="Benchmark AutoCRM hot paths.")
    parser.add_argument("--records", type=int, default=40_000)
    parser.add_argument("--leads", type=int, default=5_000)
    parser.add_argument("--repeats", type=int, default=120)
    args = parser.parse_args()

    print("autocrm_hot_path_benchmark")
    print(f"records={args.records}")
    print(f"leads={args.leads}")
    print(f"repeats={args.repeats}")
    print()

    disk_elapsed, disk_rps = bench_disk_upsert(args.records // 4)
    print(f"disk_upsert_vehicles_seconds={disk_elapsed:.6f}")
    print(f"disk_upsert_vehicles_rows_per_sec={disk_rps:.0f}")
    print()

    match_elapsed, match_avg_ms = bench_match(args.records, args.repeats)
    print(f"match_total_seconds={match_elapsed:.6f}")
    print(f"match_avg_ms={match_avg_ms:.4f}")
    print()

    demand_elapsed, demand_updates = bench_demand_analysis(min(args.records, 10_000), args.leads)
    print(f"demand_analysis_seconds={demand_elapsed:.6f}")
    print(f"demand_analysis_vehicles_updated={demand_updates}")
    print()

    sweep_elapsed, sweep_fired = await bench_follow_up_sweep(args.leads)
    print(f"follow_up_sweep_seconds={sweep_elapsed:.6f}")
    print(f"follow_up_sweep_fired={sweep_fired}")
    print()

    hot_elapsed, hot_count = await bench_hot_leads(args.leads)
    print(f"hot_leads_seconds={hot_elapsed:.6f}")
    print(f"hot_leads_count={hot_count}")


if __name__ == "__main__":
    asyncio.run(main())
