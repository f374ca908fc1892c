# lastmile/routers/pricing.py
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from lastmile.dependencies import get_engine
from lastmile.pricing.engine import PricingEngine
from lastmile.schemas.pricing import (
    CalculateRequest,
    CarrierQuoteOut,
    CompareRequest,
    PricingOut,
    QuickQuoteOut,
    ZoneOut,
    carrier_quote_out,
    pricing_out,
)

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post("/calculate", response_model=PricingOut)
async def calculate(req: CalculateRequest, engine: PricingEngine = Depends(get_engine)) -> PricingOut:
    result = await engine.calculate_freight(req.to_request())
    return pricing_out(result)


@router.post("/compare", response_model=List[CarrierQuoteOut])
async def compare(req: CompareRequest, engine: PricingEngine = Depends(get_engine)) -> List[CarrierQuoteOut]:
    """All active carriers (or `carrier_ids`), cheapest first; failed carriers last."""
    quotes = await engine.calculate_multi_carrier_quotes(req.to_request(), req.carrier_ids)
    return [carrier_quote_out(q) for q in quotes]


@router.get("/quick", response_model=QuickQuoteOut)
async def quick(
    carrier_id: int,
    zone_code: str,
    weight: Decimal = Query(..., gt=0),
    engine: PricingEngine = Depends(get_engine),
) -> QuickQuoteOut:
    q = await engine.quick_quote(carrier_id, zone_code, weight)
    return QuickQuoteOut(
        purchase_cost=q.purchase_cost,
        sales_amount=q.sales_amount,
        profit=q.profit,
        currency=q.currency,
    )


@router.get("/match-zone", response_model=ZoneOut)
async def match_zone(
    carrier_id: int,
    postal_code: Optional[str] = None,
    country: Optional[str] = None,
    engine: PricingEngine = Depends(get_engine),
) -> ZoneOut:
    zone = await engine.match_zone_for(carrier_id, postal_code, country)
    if zone is None:
        return ZoneOut(matched=False)
    return ZoneOut(matched=True, zone_code=zone.zone_code, zone_name=zone.zone_name)
