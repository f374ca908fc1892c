import asyncio
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from lastmile.domain.models import ChargeType, PriceUnit, SurchargeSpec
from lastmile.models import RateImportLog

from factories import card_info, tier

D = Decimal

pytestmark = pytest.mark.anyio


async def test_zones_ordered_and_decoded(store, carrier):
    zones = await store.list_zones(carrier.id)
    assert [z.zone_code for z in zones] == ["Z1", "Z2", "Z3"]
    assert zones[0].postal_prefixes == ("10", "11", "30")
    assert zones[2].countries == frozenset({"BE", "LU"})


async def test_generated_code_counts_per_day(store, carrier):
    day = date(2026, 3, 1)
    assert await store.generate_rate_card_code(carrier.id, day) == "RC-DPD-20260301-001"

    await store.create_rate_card_with_tiers(card_info(carrier.id, code="RC-DPD-20260301-001"), [])
    assert await store.generate_rate_card_code(carrier.id, day) == "RC-DPD-20260301-002"


async def test_generated_code_skips_a_taken_number(store, carrier):
    prefix = f"RC-DPD-{date.today():%Y%m%d}-"
    await store.create_rate_card_with_tiers(card_info(carrier.id, code=f"{prefix}002"), [])

    outcome = await store.create_rate_card_with_tiers(card_info(carrier.id), [tier("Z1", 0, 5, 5)])
    assert outcome.rate_card_code == f"{prefix}003"
    assert outcome.success_count == 1


async def test_concurrent_imports_same_carrier_get_distinct_codes(store, carrier):
    outcomes = await asyncio.gather(
        store.create_rate_card_with_tiers(card_info(carrier.id, name="a"), [tier("Z1", 0, 5, 5)]),
        store.create_rate_card_with_tiers(card_info(carrier.id, name="b"), [tier("Z1", 0, 5, 6)]),
    )

    codes = {o.rate_card_code for o in outcomes}
    assert len(codes) == 2
    assert all(c.startswith("RC-DPD-") for c in codes)
    assert all(o.success_count == 1 for o in outcomes)


async def test_create_rate_card_writes_everything_once(store, carrier):
    outcome = await store.create_rate_card_with_tiers(
        card_info(carrier.id, price_unit=PriceUnit.PER_KG, file_name="dpd.xlsx", file_type="excel"),
        [
            tier("Z1", 0, 5, 5, 7, row=2),
            tier("Z1", 5, 10, 8, 11, row=3, unit=PriceUnit.PER_SHIPMENT),
        ],
        [SurchargeSpec(code="FUEL", name="Fuel", charge_type=ChargeType.PERCENTAGE, percentage=D("10"))],
    )

    assert (outcome.total_records, outcome.success_count, outcome.fail_count) == (2, 2, 0)
    assert outcome.rate_card_code.startswith("RC-DPD-")

    card = await store.get_rate_card(outcome.rate_card_id)
    assert card.status == "active"
    assert [(t.weight_from, t.weight_to) for t in card.tiers] == [(D("0"), D("5")), (D("5"), D("10"))]
    # unit per tier valt terug op de unit van de kaart
    assert [t.price_unit for t in card.tiers] == [PriceUnit.PER_KG, PriceUnit.PER_SHIPMENT]
    assert card.surcharges[0].percentage == D("10")


async def test_duplicate_tiers_fail_individually(store, carrier):
    outcome = await store.create_rate_card_with_tiers(
        card_info(carrier.id),
        [
            tier("Z1", 0, 5, 5, row=2),
            tier("Z1", 0, 5, 6, row=3),
            tier("Z1", 5, 10, 8, row=4),
        ],
    )

    assert (outcome.success_count, outcome.fail_count) == (2, 1)
    tiers = await store.list_tiers(outcome.rate_card_id)
    assert [t.purchase_price for t in tiers] == [D("5"), D("8")]

    async with store._session_factory() as session:
        log = (await session.scalars(select(RateImportLog))).one()
    assert log.status == "partial"
    assert "row 3" in log.error_details


async def test_failed_header_writes_nothing(store, carrier):
    await store.create_rate_card_with_tiers(card_info(carrier.id, code="DUP"), [tier("Z1", 0, 5, 5)])
    with pytest.raises(IntegrityError):
        await store.create_rate_card_with_tiers(card_info(carrier.id, code="DUP"), [tier("Z1", 0, 5, 5)])

    async with store._session_factory() as session:
        logs = (await session.scalars(select(RateImportLog))).all()
    assert len(logs) == 1


async def test_active_rate_card_selection(store, carrier):
    old = await store.create_rate_card_with_tiers(card_info(carrier.id, name="old"), [])
    default = await store.create_rate_card_with_tiers(card_info(carrier.id, name="default", is_default=True), [])
    await store.create_rate_card_with_tiers(
        card_info(carrier.id, name="expired", is_default=True, valid_until=date(2026, 2, 1)), []
    )
    express = await store.create_rate_card_with_tiers(card_info(carrier.id, name="express", service_type="express"), [])

    on = date(2026, 6, 1)
    assert (await store.get_active_rate_card(carrier.id, on)).id == default.rate_card_id
    assert (await store.get_active_rate_card(carrier.id, on, "express")).id == express.rate_card_id
    assert await store.get_active_rate_card(carrier.id, date(2025, 12, 31)) is None

    assert await store.deactivate_rate_card(default.rate_card_id)
    active = await store.get_active_rate_card(carrier.id, on, "standard")
    assert active.id == old.rate_card_id


async def test_find_tier_inclusive_bounds_and_top_tier(store, carrier, standard_card):
    card = await standard_card()

    at_bound = await store.find_tier(card.rate_card_id, "Z1", D("5"))
    assert (at_bound.weight_from, at_bound.weight_to) == (D("0"), D("5"))

    mid = await store.find_tier(card.rate_card_id, "Z1", D("7"))
    assert (mid.purchase_price, mid.sales_price) == (D("8"), D("11"))

    assert await store.find_tier(card.rate_card_id, "Z1", D("25")) is None
    top = await store.find_top_tier(card.rate_card_id, "Z1")
    assert top.weight_to == D("20")
    assert await store.find_top_tier(card.rate_card_id, "Z9") is None


async def test_shipments_roundtrip_with_carrier_code(store, carrier):
    s = await store.record_shipment(
        shipment_no="S-1",
        carrier_id=carrier.id,
        zone_code="Z1",
        weight=D("3"),
        purchase_cost=D("5"),
        sales_amount=D("7.50"),
        created_at=datetime(2026, 4, 2, 10, 0),
    )
    assert s.profit_amount == D("2.50")
    assert s.carrier_code == "DPD"

    rows = await store.list_shipments(carrier.id, start=datetime(2026, 4, 1), end=datetime(2026, 5, 1))
    assert [r.shipment_no for r in rows] == ["S-1"]
    assert await store.list_shipments(carrier.id, start=datetime(2026, 5, 1)) == []


async def test_list_carriers_and_mandatory_surcharges(store, carrier):
    await store.create_carrier("OLD", "Old carrier", status="inactive")
    gls = await store.create_carrier("GLS", "GLS")

    assert [c.code for c in await store.list_carriers()] == ["DPD", "GLS"]
    assert [c.code for c in await store.list_carriers([gls.id])] == ["GLS"]

    outcome = await store.create_rate_card_with_tiers(
        card_info(carrier.id),
        [],
        [
            SurchargeSpec(code="FUEL", name="Fuel", charge_type=ChargeType.PERCENTAGE, percentage=D("8")),
            SurchargeSpec(code="SAT", name="Saturday", sales_amount=D("4"), is_mandatory=False),
        ],
    )
    all_codes = [s.code for s in await store.get_surcharges(outcome.rate_card_id)]
    mandatory = [s.code for s in await store.get_surcharges(outcome.rate_card_id, mandatory_only=True)]
    assert sorted(all_codes) == ["FUEL", "SAT"]
    assert mandatory == ["FUEL"]
