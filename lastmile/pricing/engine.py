from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from lastmile.core.logging_config import logger
from lastmile.domain.models import (
    CarrierQuote,
    CarrierRecord,
    Dimensions,
    PriceUnit,
    PricingResult,
    QuickQuote,
    QuoteRequest,
    RateCardRecord,
    TierRecord,
    ZoneRule,
)
from lastmile.errors import (
    InvalidQuoteRequest,
    NoActiveRateCard,
    NoMatchingRate,
    PricingError,
    ZoneNotFound,
)
from lastmile.observability.metrics import quote_latency_hist, quotes_counter
from lastmile.pricing.surcharges import HUNDRED, apply_surcharges, money
from lastmile.pricing.zones import match_zone
from lastmile.repositories.rate_cards import RateCardStore

D = Decimal
ZERO = D("0")
DEFAULT_VOLUMETRIC_FACTOR = D("5000")


def volumetric_weight(dimensions: Optional[Dimensions], factor: D = DEFAULT_VOLUMETRIC_FACTOR) -> D:
    """L x W x H (cm) / factor; 0 when any dimension is missing."""
    if dimensions is None:
        return ZERO
    length, width, height = dimensions.length, dimensions.width, dimensions.height
    if not length or not width or not height:
        return ZERO
    return D(length) * D(width) * D(height) / D(factor)


def chargeable_weight(actual: D, volumetric: D) -> D:
    return max(actual or ZERO, volumetric or ZERO)


class PricingEngine:
    """
    Quote-time pricing: zone -> active rate card -> tier -> base cost ->
    surcharges -> totals. Reads only; failures raise PricingError subclasses.
    """

    def __init__(
        self,
        store: RateCardStore,
        *,
        volumetric_factor: D = DEFAULT_VOLUMETRIC_FACTOR,
        today: Optional[date] = None,
    ):
        self.store = store
        self.volumetric_factor = D(volumetric_factor)
        self._today = today

    def today(self) -> date:
        return self._today or date.today()

    # -----------------------------
    # Zone / rate card / tier
    # -----------------------------

    async def match_zone_for(
        self, carrier_id: int, postal_code: Optional[str], country: Optional[str] = None
    ) -> Optional[ZoneRule]:
        zones = await self.store.list_zones(carrier_id)
        return match_zone(zones, postal_code, country)

    async def _resolve_zone(self, request: QuoteRequest, carrier_id: Optional[int]) -> Tuple[str, str]:
        if request.zone_code:
            name = request.zone_code
            if carrier_id is not None:
                for z in await self.store.list_zones(carrier_id):
                    if z.zone_code == request.zone_code:
                        name = z.zone_name
                        break
            return request.zone_code, name

        details = {
            "carrier_id": carrier_id,
            "postal_code": request.postal_code,
            "country": request.country,
        }
        if carrier_id is None or not (request.postal_code or request.country):
            raise ZoneNotFound("no zone code and no destination to match a zone", details)

        zone = await self.match_zone_for(carrier_id, request.postal_code, request.country)
        if zone is None:
            raise ZoneNotFound("no zone matches the destination", details)
        return zone.zone_code, zone.zone_name

    async def _resolve_rate_card(
        self, request: QuoteRequest, carrier_id: Optional[int], by_id: Optional[RateCardRecord]
    ) -> RateCardRecord:
        if by_id is not None:
            return by_id
        card = await self.store.get_active_rate_card(carrier_id, self.today(), request.service_type)
        if card is None:
            raise NoActiveRateCard(
                "no active rate card for carrier",
                {
                    "carrier_id": carrier_id,
                    "service_type": request.service_type,
                    "date": self.today().isoformat(),
                },
            )
        return card

    async def _find_tier(self, rate_card_id: int, zone_code: str, weight: D) -> Tuple[TierRecord, bool, D]:
        """(tier, overflow, excess weight)"""
        tier = await self.store.find_tier(rate_card_id, zone_code, weight)
        if tier is not None:
            return tier, False, ZERO

        top = await self.store.find_top_tier(rate_card_id, zone_code)
        if top is not None and weight > top.weight_to:
            return top, True, weight - top.weight_to

        raise NoMatchingRate(
            "no tier covers the chargeable weight",
            {"rate_card_id": rate_card_id, "zone_code": zone_code, "weight": str(weight)},
        )

    # -----------------------------
    # Public API
    # -----------------------------

    async def calculate_freight(self, request: QuoteRequest) -> PricingResult:
        start = time.perf_counter()
        try:
            result = await self._calculate(request)
        except PricingError as e:
            quotes_counter.labels(result=e.code).inc()
            logger.info("quote_failed", code=e.code, message=e.message, details=e.details)
            raise
        finally:
            quote_latency_hist.observe(time.perf_counter() - start)

        quotes_counter.labels(result="success").inc()
        return result

    async def _calculate(self, request: QuoteRequest) -> PricingResult:
        if request.carrier_id is None and request.rate_card_id is None:
            raise InvalidQuoteRequest("carrier_id or rate_card_id is required")
        if request.weight is None or D(request.weight) <= 0:
            raise InvalidQuoteRequest("weight must be positive", {"weight": str(request.weight)})

        # 1. weights
        actual = D(request.weight)
        volume = volumetric_weight(request.dimensions, self.volumetric_factor)
        weight = chargeable_weight(actual, volume)

        card_by_id: Optional[RateCardRecord] = None
        carrier_id = request.carrier_id
        if request.rate_card_id is not None:
            card_by_id = await self.store.get_rate_card(request.rate_card_id)
            if card_by_id is None:
                raise NoActiveRateCard("rate card not found", {"rate_card_id": request.rate_card_id})
            carrier_id = carrier_id or card_by_id.carrier_id

        # 2. zone, 3. rate card
        zone_code, zone_name = await self._resolve_zone(request, carrier_id)
        card = await self._resolve_rate_card(request, carrier_id, card_by_id)

        # 4. tier
        tier, overflow, excess = await self._find_tier(card.id, zone_code, weight)

        # 5. base cost
        if tier.price_unit == PriceUnit.PER_KG:
            purchase = tier.purchase_price * weight if tier.purchase_price is not None else ZERO
            sales = tier.sales_price * weight if tier.sales_price is not None else ZERO
        else:
            purchase = tier.purchase_price if tier.purchase_price is not None else ZERO
            sales = tier.sales_price if tier.sales_price is not None else ZERO

        if tier.purchase_min_charge and purchase < tier.purchase_min_charge:
            purchase = tier.purchase_min_charge
        if tier.sales_min_charge and sales < tier.sales_min_charge:
            sales = tier.sales_min_charge

        # 6. surcharges
        applied, sur_p, sur_s = [], ZERO, ZERO
        if request.include_surcharges:
            surcharges = await self.store.get_surcharges(card.id, mandatory_only=True)
            applied, sur_p, sur_s = apply_surcharges(purchase, sales, surcharges)

        # 7. totals
        total_purchase = money(purchase + sur_p)
        total_sales = money(sales + sur_s)
        profit = total_sales - total_purchase
        profit_rate = money(profit / total_purchase * HUNDRED) if total_purchase > 0 else money(ZERO)

        return PricingResult(
            actual_weight=actual,
            volume_weight=money(volume),
            chargeable_weight=money(weight),
            zone_code=zone_code,
            zone_name=zone_name,
            rate_card_id=card.id,
            tier_id=tier.id,
            price_unit=tier.price_unit,
            weight_from=tier.weight_from,
            weight_to=tier.weight_to,
            base_purchase_price=tier.purchase_price,
            base_sales_price=tier.sales_price,
            purchase_cost=money(purchase),
            sales_amount=money(sales),
            surcharges=tuple(applied),
            total_purchase_surcharge=money(sur_p),
            total_sales_surcharge=money(sur_s),
            total_purchase=total_purchase,
            total_sales=total_sales,
            profit=profit,
            profit_rate=profit_rate,
            currency=card.currency,
            overflow=overflow,
            excess_weight=excess,
        )

    async def _quote_carrier(self, carrier: CarrierRecord, request: QuoteRequest) -> CarrierQuote:
        req = replace(request, carrier_id=carrier.id, rate_card_id=None)
        try:
            result = await self.calculate_freight(req)
        except PricingError as e:
            return CarrierQuote(
                carrier_id=carrier.id,
                carrier_code=carrier.code,
                carrier_name=carrier.name,
                error_code=e.code,
                error=e.message,
                details=e.details,
            )
        return CarrierQuote(
            carrier_id=carrier.id,
            carrier_code=carrier.code,
            carrier_name=carrier.name,
            result=result,
        )

    async def calculate_multi_carrier_quotes(
        self, request: QuoteRequest, carrier_ids: Optional[Sequence[int]] = None
    ) -> List[CarrierQuote]:
        """
        Price every active carrier (or `carrier_ids`) concurrently. Successful
        quotes come first, cheapest purchase first; failures keep carrier order.
        """
        carriers = await self.store.list_carriers(carrier_ids)
        quotes = await asyncio.gather(*(self._quote_carrier(c, request) for c in carriers))

        ok = sorted((q for q in quotes if q.success), key=lambda q: q.result.total_purchase)
        failed = [q for q in quotes if not q.success]
        logger.info("multi_carrier_quoted", carriers=len(carriers), success=len(ok), failed=len(failed))
        return ok + failed

    async def quick_quote(self, carrier_id: int, zone_code: str, weight: D) -> QuickQuote:
        result = await self.calculate_freight(
            QuoteRequest(weight=D(weight), carrier_id=carrier_id, zone_code=zone_code, include_surcharges=False)
        )
        return QuickQuote(
            purchase_cost=result.purchase_cost,
            sales_amount=result.sales_amount,
            profit=result.profit,
            currency=result.currency,
        )
