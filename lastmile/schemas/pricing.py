# lastmile/schemas/pricing.py
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from lastmile.domain.models import CarrierQuote, Dimensions, PricingResult, QuoteRequest


class DimensionsIn(BaseModel):
    length: Optional[Decimal] = Field(default=None, gt=0)
    width: Optional[Decimal] = Field(default=None, gt=0)
    height: Optional[Decimal] = Field(default=None, gt=0)


class CalculateRequest(BaseModel):
    weight: Decimal = Field(gt=0)
    carrier_id: Optional[int] = None
    rate_card_id: Optional[int] = None
    zone_code: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    dimensions: Optional[DimensionsIn] = None
    service_type: Optional[str] = None
    include_surcharges: bool = True

    @model_validator(mode="after")
    def _carrier_or_card(self):
        if self.carrier_id is None and self.rate_card_id is None:
            raise ValueError("carrier_id or rate_card_id is required")
        return self

    def to_request(self) -> QuoteRequest:
        return QuoteRequest(
            weight=self.weight,
            carrier_id=self.carrier_id,
            rate_card_id=self.rate_card_id,
            zone_code=self.zone_code,
            postal_code=self.postal_code,
            country=self.country,
            dimensions=Dimensions(**self.dimensions.model_dump()) if self.dimensions else None,
            service_type=self.service_type,
            include_surcharges=self.include_surcharges,
        )


class CompareRequest(BaseModel):
    weight: Decimal = Field(gt=0)
    carrier_ids: Optional[List[int]] = None
    zone_code: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    dimensions: Optional[DimensionsIn] = None
    service_type: Optional[str] = None
    include_surcharges: bool = True

    def to_request(self) -> QuoteRequest:
        return QuoteRequest(
            weight=self.weight,
            zone_code=self.zone_code,
            postal_code=self.postal_code,
            country=self.country,
            dimensions=Dimensions(**self.dimensions.model_dump()) if self.dimensions else None,
            service_type=self.service_type,
            include_surcharges=self.include_surcharges,
        )


class SurchargeOut(BaseModel):
    code: str
    name: str
    charge_type: str
    purchase_amount: Decimal
    sales_amount: Decimal


class PricingOut(BaseModel):
    actual_weight: Decimal
    volume_weight: Decimal
    chargeable_weight: Decimal
    zone_code: str
    zone_name: str
    rate_card_id: int
    tier_id: int
    weight_range: str
    price_unit: str
    base_purchase_price: Optional[Decimal] = None
    base_sales_price: Optional[Decimal] = None
    purchase_cost: Decimal
    sales_amount: Decimal
    surcharges: List[SurchargeOut] = []
    total_purchase_surcharge: Decimal
    total_sales_surcharge: Decimal
    total_purchase: Decimal
    total_sales: Decimal
    profit: Decimal
    profit_rate: Decimal
    currency: str
    overflow: bool = False
    excess_weight: Decimal = Decimal("0")


class CarrierQuoteOut(BaseModel):
    carrier_id: int
    carrier_code: str
    carrier_name: str
    success: bool
    result: Optional[PricingOut] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = {}


class QuickQuoteOut(BaseModel):
    purchase_cost: Decimal
    sales_amount: Decimal
    profit: Decimal
    currency: str


class ZoneOut(BaseModel):
    matched: bool
    zone_code: Optional[str] = None
    zone_name: Optional[str] = None


def pricing_out(r: PricingResult) -> PricingOut:
    return PricingOut(
        actual_weight=r.actual_weight,
        volume_weight=r.volume_weight,
        chargeable_weight=r.chargeable_weight,
        zone_code=r.zone_code,
        zone_name=r.zone_name,
        rate_card_id=r.rate_card_id,
        tier_id=r.tier_id,
        weight_range=r.weight_range,
        price_unit=r.price_unit.value,
        base_purchase_price=r.base_purchase_price,
        base_sales_price=r.base_sales_price,
        purchase_cost=r.purchase_cost,
        sales_amount=r.sales_amount,
        surcharges=[
            SurchargeOut(
                code=s.code,
                name=s.name,
                charge_type=s.charge_type.value,
                purchase_amount=s.purchase_amount,
                sales_amount=s.sales_amount,
            )
            for s in r.surcharges
        ],
        total_purchase_surcharge=r.total_purchase_surcharge,
        total_sales_surcharge=r.total_sales_surcharge,
        total_purchase=r.total_purchase,
        total_sales=r.total_sales,
        profit=r.profit,
        profit_rate=r.profit_rate,
        currency=r.currency,
        overflow=r.overflow,
        excess_weight=r.excess_weight,
    )


def carrier_quote_out(q: CarrierQuote) -> CarrierQuoteOut:
    return CarrierQuoteOut(
        carrier_id=q.carrier_id,
        carrier_code=q.carrier_code,
        carrier_name=q.carrier_name,
        success=q.success,
        result=pricing_out(q.result) if q.result else None,
        error_code=q.error_code,
        error=q.error,
        details=q.details,
    )
