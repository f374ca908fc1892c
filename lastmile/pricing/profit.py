"""
Profit figures over rate tiers and recorded shipments.

Pure aggregation; when there is nothing priced to report on, results say
so (`insufficient_data`) instead of raising.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time as dt_time, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from lastmile.domain.models import ChargeType, ShipmentRecord, SurchargeRecord, TierRecord
from lastmile.pricing.surcharges import HUNDRED, money
from lastmile.repositories.rate_cards import RateCardStore

D = Decimal
ZERO = D("0")

# shipment statuses that count as revenue
COUNTED_STATUSES = frozenset({"created", "in_transit", "delivered"})


def _avg(values: Sequence[D]) -> D:
    return money(sum(values, ZERO) / len(values))


def calculate_margin_rate(purchase: Optional[D], sale: Optional[D]) -> D:
    """(sale - purchase) / purchase * 100; 0 when purchase is not positive."""
    if not purchase or purchase <= 0 or sale is None:
        return money(ZERO)
    return money((sale - purchase) / purchase * HUNDRED)


def calculate_sales_price(purchase: Optional[D], margin_rate: D) -> D:
    """purchase * (1 + margin_rate / 100); 0 when purchase is not positive."""
    if not purchase or purchase <= 0:
        return money(ZERO)
    return money(purchase * (1 + D(margin_rate) / HUNDRED))


@dataclass(frozen=True)
class ShipmentProfit:
    purchase_cost: D
    purchase_surcharges: D
    total_purchase: D
    sales_amount: D
    sales_surcharges: D
    total_sales: D
    profit: D
    profit_rate: D


def calculate_shipment_profit(
    purchase_cost: D,
    sales_amount: D,
    surcharges: Iterable[SurchargeRecord] = (),
) -> ShipmentProfit:
    """Every given surcharge counts here, mandatory or not."""
    sur_p = ZERO
    sur_s = ZERO
    for s in surcharges:
        if s.charge_type == ChargeType.PERCENTAGE:
            sur_p += purchase_cost * s.percentage / HUNDRED
            sur_s += sales_amount * s.percentage / HUNDRED
        else:
            sur_p += s.purchase_amount
            sur_s += s.sales_amount

    total_p = money(purchase_cost + sur_p)
    total_s = money(sales_amount + sur_s)
    profit = total_s - total_p
    rate = money(profit / total_p * HUNDRED) if total_p > 0 else money(ZERO)
    return ShipmentProfit(
        purchase_cost=money(purchase_cost),
        purchase_surcharges=money(sur_p),
        total_purchase=total_p,
        sales_amount=money(sales_amount),
        sales_surcharges=money(sur_s),
        total_sales=total_s,
        profit=profit,
        profit_rate=rate,
    )


def apply_margin_to_tiers(tiers: Sequence[TierRecord], margin_rate: D) -> List[TierRecord]:
    """Set sales = purchase * (1 + margin/100) on every tier with a positive purchase price."""
    out = []
    for t in tiers:
        if t.purchase_price and t.purchase_price > 0:
            t = replace(
                t,
                sales_price=calculate_sales_price(t.purchase_price, margin_rate),
                margin_rate=D(margin_rate),
            )
        out.append(t)
    return out


def _priced(tiers: Iterable[Any]) -> List[Any]:
    return [t for t in tiers if t.purchase_price and t.sales_price]


@dataclass(frozen=True)
class TierProfit:
    zone_code: str
    weight_from: D
    weight_to: D
    purchase_price: D
    sales_price: D
    profit: D
    profit_rate: D

    @property
    def weight_range(self) -> str:
        return f"{self.weight_from}-{self.weight_to}"


@dataclass
class ProfitReport:
    tier_count: int
    priced_count: int
    insufficient_data: bool = False
    min_profit: Optional[D] = None
    max_profit: Optional[D] = None
    avg_profit: Optional[D] = None
    min_profit_rate: Optional[D] = None
    max_profit_rate: Optional[D] = None
    avg_profit_rate: Optional[D] = None
    details: List[TierProfit] = field(default_factory=list)


def analyze_rate_card_profit(tiers: Sequence[Any]) -> ProfitReport:
    priced = _priced(tiers)
    if not priced:
        return ProfitReport(tier_count=len(tiers), priced_count=0, insufficient_data=True)

    details = [
        TierProfit(
            zone_code=t.zone_code,
            weight_from=t.weight_from,
            weight_to=t.weight_to,
            purchase_price=t.purchase_price,
            sales_price=t.sales_price,
            profit=t.sales_price - t.purchase_price,
            profit_rate=calculate_margin_rate(t.purchase_price, t.sales_price),
        )
        for t in priced
    ]
    profits = [d.profit for d in details]
    rates = [d.profit_rate for d in details]

    return ProfitReport(
        tier_count=len(tiers),
        priced_count=len(priced),
        min_profit=min(profits),
        max_profit=max(profits),
        avg_profit=_avg(profits),
        min_profit_rate=min(rates),
        max_profit_rate=max(rates),
        avg_profit_rate=_avg(rates),
        details=details,
    )


@dataclass(frozen=True)
class ZoneProfit:
    tier_count: int
    priced_count: int
    avg_purchase: Optional[D] = None
    avg_sales: Optional[D] = None
    avg_profit: Optional[D] = None
    avg_profit_rate: Optional[D] = None


def analyze_by_zone(tiers: Sequence[Any]) -> Dict[str, ZoneProfit]:
    groups: Dict[str, List[Any]] = {}
    for t in tiers:
        groups.setdefault(t.zone_code or "default", []).append(t)

    result: Dict[str, ZoneProfit] = {}
    for zone, zone_tiers in groups.items():
        priced = _priced(zone_tiers)
        if not priced:
            result[zone] = ZoneProfit(tier_count=len(zone_tiers), priced_count=0)
            continue
        result[zone] = ZoneProfit(
            tier_count=len(zone_tiers),
            priced_count=len(priced),
            avg_purchase=_avg([t.purchase_price for t in priced]),
            avg_sales=_avg([t.sales_price for t in priced]),
            avg_profit=_avg([t.sales_price - t.purchase_price for t in priced]),
            avg_profit_rate=_avg(
                [(t.sales_price - t.purchase_price) / t.purchase_price * HUNDRED for t in priced]
            ),
        )
    return result


@dataclass(frozen=True)
class MonthlyProfit:
    month: str  # YYYY-MM
    carrier_code: str
    shipment_count: int
    total_purchase: D
    total_sales: D
    total_profit: D
    avg_profit_rate: D


def monthly_profit_trend(shipments: Iterable[ShipmentRecord]) -> List[MonthlyProfit]:
    """Per (month, carrier) totals, newest month first."""
    buckets: Dict[tuple, List[ShipmentRecord]] = {}
    for s in shipments:
        if s.status not in COUNTED_STATUSES:
            continue
        key = (s.created_at.strftime("%Y-%m"), s.carrier_code)
        buckets.setdefault(key, []).append(s)

    out = []
    for (month, carrier_code), items in buckets.items():
        total_p = sum((s.purchase_cost for s in items), ZERO)
        total_s = sum((s.sales_amount for s in items), ZERO)
        total_profit = sum((s.profit_amount for s in items), ZERO)
        out.append(
            MonthlyProfit(
                month=month,
                carrier_code=carrier_code,
                shipment_count=len(items),
                total_purchase=money(total_p),
                total_sales=money(total_s),
                total_profit=money(total_profit),
                avg_profit_rate=money(total_profit / total_p * HUNDRED) if total_p > 0 else money(ZERO),
            )
        )
    out.sort(key=lambda m: (m.month, m.carrier_code))
    out.sort(key=lambda m: m.month, reverse=True)
    return out


@dataclass(frozen=True)
class ZoneRanking:
    rank: int
    zone_code: str
    shipment_count: int
    total_weight: D
    total_purchase: D
    total_sales: D
    total_profit: D
    avg_profit: D
    profit_rate: D


def zone_profit_ranking(shipments: Iterable[ShipmentRecord]) -> List[ZoneRanking]:
    """Zones by total profit, highest first. Shipments without a zone are left out."""
    groups: Dict[str, List[ShipmentRecord]] = {}
    for s in shipments:
        if s.status not in COUNTED_STATUSES or not s.zone_code:
            continue
        groups.setdefault(s.zone_code, []).append(s)

    rows = []
    for zone, items in groups.items():
        total_p = sum((s.purchase_cost for s in items), ZERO)
        total_profit = sum((s.profit_amount for s in items), ZERO)
        rows.append(
            (
                zone,
                len(items),
                sum((s.weight for s in items), ZERO),
                total_p,
                sum((s.sales_amount for s in items), ZERO),
                total_profit,
            )
        )
    rows.sort(key=lambda r: (-r[5], r[0]))

    return [
        ZoneRanking(
            rank=i + 1,
            zone_code=zone,
            shipment_count=count,
            total_weight=weight,
            total_purchase=money(total_p),
            total_sales=money(total_s),
            total_profit=money(total_profit),
            avg_profit=money(total_profit / count),
            profit_rate=money(total_profit / total_p * HUNDRED) if total_p > 0 else money(ZERO),
        )
        for i, (zone, count, weight, total_p, total_s, total_profit) in enumerate(rows)
    ]


def _months_back(today: date, months: int) -> datetime:
    """Start of the month `months - 1` months before `today`."""
    idx = today.year * 12 + (today.month - 1) - (max(months, 1) - 1)
    return datetime.combine(date(idx // 12, idx % 12 + 1, 1), dt_time.min, tzinfo=timezone.utc)


class ProfitAnalyzer:
    """Store-backed wrappers around the aggregations above."""

    def __init__(self, store: RateCardStore):
        self.store = store

    async def rate_card_profit(self, rate_card_id: int) -> ProfitReport:
        return analyze_rate_card_profit(await self.store.list_tiers(rate_card_id))

    async def rate_card_profit_by_zone(self, rate_card_id: int) -> Dict[str, ZoneProfit]:
        return analyze_by_zone(await self.store.list_tiers(rate_card_id))

    async def monthly_trend(
        self, carrier_id: Optional[int] = None, months: int = 12, today: Optional[date] = None
    ) -> List[MonthlyProfit]:
        start = _months_back(today or date.today(), months)
        return monthly_profit_trend(await self.store.list_shipments(carrier_id, start=start))

    async def zone_ranking(
        self,
        carrier_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ZoneRanking]:
        return zone_profit_ranking(await self.store.list_shipments(carrier_id, start=start, end=end))
