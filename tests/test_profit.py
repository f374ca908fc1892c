from datetime import date, datetime
from decimal import Decimal

import pytest

from lastmile.domain.models import ChargeType, PriceUnit, ShipmentRecord, SurchargeRecord, TierRecord
from lastmile.pricing.profit import (
    ProfitAnalyzer,
    analyze_by_zone,
    analyze_rate_card_profit,
    apply_margin_to_tiers,
    calculate_margin_rate,
    calculate_sales_price,
    calculate_shipment_profit,
    monthly_profit_trend,
    zone_profit_ranking,
)

D = Decimal


def _tier(zone, purchase, sales, w_from=0, w_to=5):
    return TierRecord(
        id=1,
        rate_card_id=1,
        zone_code=zone,
        weight_from=D(w_from),
        weight_to=D(w_to),
        purchase_price=None if purchase is None else D(str(purchase)),
        sales_price=None if sales is None else D(str(sales)),
        price_unit=PriceUnit.PER_SHIPMENT,
    )


def _shipment(no, carrier, zone, when, purchase, sales, status="delivered", weight="2"):
    return ShipmentRecord(
        id=0,
        shipment_no=no,
        carrier_id=1,
        carrier_code=carrier,
        zone_code=zone,
        weight=D(weight),
        purchase_cost=D(str(purchase)),
        sales_amount=D(str(sales)),
        profit_amount=D(str(sales)) - D(str(purchase)),
        currency="EUR",
        status=status,
        created_at=when,
    )


def test_margin_and_sales_price_are_inverse():
    assert calculate_margin_rate(D("10"), D("15")) == D("50.00")
    assert calculate_sales_price(D("10"), D("50")) == D("15.00")
    assert calculate_margin_rate(D("0"), D("15")) == D("0.00")
    assert calculate_sales_price(None, D("50")) == D("0.00")


def test_shipment_profit_counts_every_surcharge():
    surcharges = [
        SurchargeRecord(1, 1, "FUEL", "Fuel", ChargeType.PERCENTAGE, percentage=D("10")),
        SurchargeRecord(2, 1, "SAT", "Saturday", ChargeType.FIXED, D("2"), D("3"), is_mandatory=False),
    ]
    p = calculate_shipment_profit(D("10"), D("15"), surcharges)

    assert (p.total_purchase, p.total_sales) == (D("13.00"), D("19.50"))
    assert p.profit == D("6.50")
    assert p.profit_rate == D("50.00")


def test_apply_margin_skips_unpriced_tiers():
    tiers = apply_margin_to_tiers([_tier("Z1", 10, None), _tier("Z1", None, None)], D("20"))
    assert tiers[0].sales_price == D("12.00")
    assert tiers[0].margin_rate == D("20")
    assert tiers[1].sales_price is None


def test_rate_card_profit_report():
    report = analyze_rate_card_profit([_tier("Z1", 10, 15), _tier("Z1", 8, 10), _tier("Z2", 5, None)])

    assert (report.tier_count, report.priced_count) == (3, 2)
    assert (report.min_profit, report.max_profit, report.avg_profit) == (D("2"), D("5"), D("3.50"))
    assert (report.min_profit_rate, report.max_profit_rate) == (D("25.00"), D("50.00"))
    assert report.details[0].weight_range == "0-5"


def test_rate_card_profit_insufficient_data():
    report = analyze_rate_card_profit([_tier("Z1", 10, None)])
    assert report.insufficient_data
    assert report.avg_profit is None


def test_profit_by_zone():
    zones = analyze_by_zone([_tier("Z1", 10, 15), _tier("Z1", 20, 25), _tier("Z2", 5, None)])
    assert zones["Z1"].avg_purchase == D("15.00")
    assert zones["Z1"].avg_profit == D("5.00")
    assert zones["Z1"].avg_profit_rate == D("37.50")
    assert zones["Z2"].priced_count == 0
    assert zones["Z2"].avg_profit is None


def test_monthly_trend_buckets_and_statuses():
    shipments = [
        _shipment("1", "DPD", "Z1", datetime(2026, 4, 3), 10, 15),
        _shipment("2", "DPD", "Z1", datetime(2026, 4, 20), 10, 12),
        _shipment("3", "GLS", "Z2", datetime(2026, 4, 21), 5, 6),
        _shipment("4", "DPD", "Z1", datetime(2026, 5, 1), 8, 10, status="in_transit"),
        _shipment("5", "DPD", "Z1", datetime(2026, 5, 2), 8, 10, status="cancelled"),
    ]
    trend = monthly_profit_trend(shipments)

    assert [(m.month, m.carrier_code, m.shipment_count) for m in trend] == [
        ("2026-05", "DPD", 1),
        ("2026-04", "DPD", 2),
        ("2026-04", "GLS", 1),
    ]
    april = trend[1]
    assert (april.total_purchase, april.total_sales, april.total_profit) == (D("20.00"), D("27.00"), D("7.00"))
    assert april.avg_profit_rate == D("35.00")


def test_zone_ranking():
    shipments = [
        _shipment("1", "DPD", "Z1", datetime(2026, 4, 3), 10, 12),
        _shipment("2", "DPD", "Z2", datetime(2026, 4, 3), 10, 20),
        _shipment("3", "DPD", "Z2", datetime(2026, 4, 4), 10, 11),
        _shipment("4", "DPD", None, datetime(2026, 4, 4), 1, 100),
    ]
    ranking = zone_profit_ranking(shipments)

    assert [(r.rank, r.zone_code, r.shipment_count) for r in ranking] == [(1, "Z2", 2), (2, "Z1", 1)]
    assert ranking[0].total_profit == D("11.00")
    assert ranking[0].avg_profit == D("5.50")
    assert ranking[0].profit_rate == D("55.00")
    assert ranking[0].total_weight == D("4")


@pytest.mark.anyio
async def test_analyzer_reads_from_store(store, carrier, standard_card):
    card = await standard_card()
    analyzer = ProfitAnalyzer(store)

    report = await analyzer.rate_card_profit(card.rate_card_id)
    assert report.priced_count == 4

    zones = await analyzer.rate_card_profit_by_zone(card.rate_card_id)
    assert set(zones) == {"Z1", "Z2"}

    await store.record_shipment(
        shipment_no="S-1", carrier_id=carrier.id, zone_code="Z1", weight=D("3"),
        purchase_cost=D("5"), sales_amount=D("7"), created_at=datetime(2026, 5, 10),
    )
    await store.record_shipment(
        shipment_no="S-0", carrier_id=carrier.id, zone_code="Z1", weight=D("3"),
        purchase_cost=D("5"), sales_amount=D("7"), created_at=datetime(2025, 1, 10),
    )

    trend = await analyzer.monthly_trend(carrier.id, months=3, today=date(2026, 6, 15))
    assert [(m.month, m.shipment_count) for m in trend] == [("2026-05", 1)]

    ranking = await analyzer.zone_ranking(carrier.id)
    assert ranking[0].shipment_count == 2
