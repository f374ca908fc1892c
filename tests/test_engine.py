from datetime import date
from decimal import Decimal

import pytest

from lastmile.domain.models import ChargeType, Dimensions, QuoteRequest, SurchargeRecord, SurchargeSpec, ZoneRule
from lastmile.errors import InvalidQuoteRequest, NoActiveRateCard, NoMatchingRate, ZoneNotFound
from lastmile.pricing.engine import PricingEngine, chargeable_weight, volumetric_weight
from lastmile.pricing.surcharges import apply_surcharges
from lastmile.pricing.zones import match_zone

from factories import card_info, tier

D = Decimal

TODAY = date(2026, 6, 1)


@pytest.fixture
def engine(store):
    return PricingEngine(store, today=TODAY)


# -----------------------------
# Pure helpers
# -----------------------------


def test_volumetric_and_chargeable_weight():
    assert volumetric_weight(Dimensions(D("50"), D("40"), D("30"))) == D("12")
    assert volumetric_weight(Dimensions(D("50"), None, D("30"))) == 0
    assert volumetric_weight(None) == 0
    assert chargeable_weight(D("5"), D("12")) == D("12")
    assert chargeable_weight(D("15"), D("12")) == D("15")


def test_match_zone_prefix_then_country_in_order():
    zones = [
        ZoneRule(1, 1, "AMS", "Amsterdam", postal_prefixes=("10",)),
        ZoneRule(2, 1, "NL", "Nederland", countries=frozenset({"NL"})),
        ZoneRule(3, 1, "UTR", "Utrecht", postal_prefixes=("35",)),
    ]
    assert match_zone(zones, "1012 AB", "NL").zone_code == "AMS"
    # de country-zone staat eerder dan de prefix-zone en wint dus
    assert match_zone(zones, "3511 AA", "nl").zone_code == "NL"
    assert match_zone(zones, "3511AA").zone_code == "UTR"
    assert match_zone(zones, "9999", "DE") is None


def test_apply_surcharges_mandatory_only_and_per_side():
    surcharges = [
        SurchargeRecord(1, 1, "FUEL", "Fuel", ChargeType.PERCENTAGE, percentage=D("10")),
        SurchargeRecord(2, 1, "RES", "Residential", ChargeType.FIXED, D("1"), D("1.50")),
        SurchargeRecord(3, 1, "SAT", "Saturday", ChargeType.FIXED, D("5"), D("8"), is_mandatory=False),
    ]
    applied, total_p, total_s = apply_surcharges(D("8"), D("11"), surcharges)

    assert [a.code for a in applied] == ["FUEL", "RES"]
    assert (applied[0].purchase_amount, applied[0].sales_amount) == (D("0.80"), D("1.10"))
    assert (total_p, total_s) == (D("1.80"), D("2.60"))


# -----------------------------
# calculate_freight
# -----------------------------


@pytest.mark.anyio
async def test_in_band_quote_by_postal_code(engine, carrier, standard_card):
    card = await standard_card()
    result = await engine.calculate_freight(QuoteRequest(weight=D("7"), carrier_id=carrier.id, postal_code="1012AB"))

    assert (result.zone_code, result.zone_name) == ("Z1", "Randstad")
    assert result.rate_card_id == card.rate_card_id
    assert result.weight_range == "5-10"
    assert (result.purchase_cost, result.sales_amount) == (D("8.00"), D("11.00"))
    assert (result.profit, result.profit_rate) == (D("3.00"), D("37.50"))
    assert result.overflow is False


@pytest.mark.anyio
async def test_per_kg_tier_multiplies_chargeable_weight(engine, carrier, standard_card):
    await standard_card()
    result = await engine.calculate_freight(
        QuoteRequest(
            weight=D("2"),
            carrier_id=carrier.id,
            zone_code="Z2",
            dimensions=Dimensions(D("50"), D("40"), D("20")),
        )
    )
    # 50*40*20/5000 = 8 kg volumetrisch
    assert result.chargeable_weight == D("8.00")
    assert (result.purchase_cost, result.sales_amount) == (D("12.00"), D("18.00"))


@pytest.mark.anyio
async def test_overflow_uses_top_tier(engine, carrier, standard_card):
    await standard_card()
    result = await engine.calculate_freight(QuoteRequest(weight=D("25"), carrier_id=carrier.id, zone_code="Z1"))

    assert result.overflow is True
    assert result.excess_weight == D("5")
    assert result.weight_range == "10-20"
    assert result.purchase_cost == D("12.00")


@pytest.mark.anyio
async def test_min_charge_and_surcharges(engine, store, carrier):
    await store.create_rate_card_with_tiers(
        card_info(carrier.id),
        [tier("Z1", 0, 5, 10, 15, purchase_min_charge=D("12"))],
        [
            SurchargeSpec(code="FUEL", name="Fuel", charge_type=ChargeType.PERCENTAGE, percentage=D("10")),
            SurchargeSpec(code="PEAK", name="Peak", purchase_amount=D("1"), sales_amount=D("2"), is_mandatory=False),
        ],
    )
    result = await engine.calculate_freight(QuoteRequest(weight=D("1"), carrier_id=carrier.id, zone_code="Z1"))

    assert (result.purchase_cost, result.sales_amount) == (D("12.00"), D("15.00"))
    assert [s.code for s in result.surcharges] == ["FUEL"]
    assert (result.total_purchase, result.total_sales) == (D("13.20"), D("16.50"))
    assert result.profit == D("3.30")

    bare = await engine.calculate_freight(
        QuoteRequest(weight=D("1"), carrier_id=carrier.id, zone_code="Z1", include_surcharges=False)
    )
    assert bare.total_purchase == D("12.00")


@pytest.mark.anyio
async def test_profit_rate_zero_without_purchase(engine, store, carrier):
    await store.create_rate_card_with_tiers(card_info(carrier.id), [tier("Z1", 0, 5, 0, 4)])
    result = await engine.calculate_freight(QuoteRequest(weight=D("1"), carrier_id=carrier.id, zone_code="Z1"))
    assert result.profit == D("4.00")
    assert result.profit_rate == D("0.00")


@pytest.mark.anyio
async def test_explicit_rate_card_id(engine, store, carrier, standard_card):
    first = await standard_card()
    await store.create_rate_card_with_tiers(card_info(carrier.id, is_default=True), [tier("Z1", 0, 100, 99)])

    result = await engine.calculate_freight(
        QuoteRequest(weight=D("3"), rate_card_id=first.rate_card_id, zone_code="Z1")
    )
    assert result.rate_card_id == first.rate_card_id
    assert result.purchase_cost == D("5.00")


@pytest.mark.anyio
@pytest.mark.parametrize(
    "request_kwargs, error",
    [
        ({"weight": D("0"), "zone_code": "Z1"}, InvalidQuoteRequest),
        ({"weight": D("1"), "postal_code": "5611"}, ZoneNotFound),
        ({"weight": D("1")}, ZoneNotFound),
        ({"weight": D("1"), "zone_code": "Z3"}, NoMatchingRate),
    ],
)
async def test_error_codes(engine, carrier, standard_card, request_kwargs, error):
    await standard_card()
    with pytest.raises(error) as exc:
        await engine.calculate_freight(QuoteRequest(carrier_id=carrier.id, **request_kwargs))
    assert exc.value.code == error.code


@pytest.mark.anyio
async def test_no_active_rate_card(engine, carrier):
    with pytest.raises(NoActiveRateCard) as exc:
        await engine.calculate_freight(QuoteRequest(weight=D("1"), carrier_id=carrier.id, zone_code="Z1"))
    assert exc.value.details["carrier_id"] == carrier.id

    with pytest.raises(NoActiveRateCard):
        await engine.calculate_freight(QuoteRequest(weight=D("1"), rate_card_id=404, zone_code="Z1"))

    with pytest.raises(InvalidQuoteRequest):
        await engine.calculate_freight(QuoteRequest(weight=D("1"), zone_code="Z1"))


@pytest.mark.anyio
async def test_multi_carrier_sorted_by_purchase_failures_last(engine, store, carrier):
    cheap = await store.create_carrier("GLS", "GLS")
    no_card = await store.create_carrier("UPS", "UPS")

    await store.create_rate_card_with_tiers(card_info(carrier.id), [tier("Z1", 0, 10, 9, 12)])
    await store.create_rate_card_with_tiers(card_info(cheap.id), [tier("Z1", 0, 10, 6, 10)])

    quotes = await engine.calculate_multi_carrier_quotes(QuoteRequest(weight=D("4"), zone_code="Z1"))

    assert [q.carrier_code for q in quotes] == ["GLS", "DPD", "UPS"]
    assert [q.success for q in quotes] == [True, True, False]
    assert quotes[2].error_code == "NO_ACTIVE_RATE_CARD"
    assert quotes[2].carrier_id == no_card.id

    only = await engine.calculate_multi_carrier_quotes(QuoteRequest(weight=D("4"), zone_code="Z1"), [carrier.id])
    assert [q.carrier_code for q in only] == ["DPD"]


@pytest.mark.anyio
async def test_quick_quote_and_match_zone_for(engine, carrier, standard_card):
    await standard_card()
    q = await engine.quick_quote(carrier.id, "Z1", D("3"))
    assert (q.purchase_cost, q.sales_amount, q.profit, q.currency) == (D("5.00"), D("7.00"), D("2.00"), "EUR")

    zone = await engine.match_zone_for(carrier.id, None, "be")
    assert zone.zone_code == "Z3"
