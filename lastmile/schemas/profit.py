# lastmile/schemas/profit.py
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class TierProfitOut(BaseModel):
    zone_code: str
    weight_range: str
    purchase_price: Decimal
    sales_price: Decimal
    profit: Decimal
    profit_rate: Decimal


class ProfitReportOut(BaseModel):
    rate_card_id: int
    tier_count: int
    priced_count: int
    insufficient_data: bool = False
    min_profit: Optional[Decimal] = None
    max_profit: Optional[Decimal] = None
    avg_profit: Optional[Decimal] = None
    min_profit_rate: Optional[Decimal] = None
    max_profit_rate: Optional[Decimal] = None
    avg_profit_rate: Optional[Decimal] = None
    details: List[TierProfitOut] = []


class ZoneProfitOut(BaseModel):
    zone_code: str
    tier_count: int
    priced_count: int
    avg_purchase: Optional[Decimal] = None
    avg_sales: Optional[Decimal] = None
    avg_profit: Optional[Decimal] = None
    avg_profit_rate: Optional[Decimal] = None


class MonthlyProfitOut(BaseModel):
    month: str
    carrier_code: str
    shipment_count: int
    total_purchase: Decimal
    total_sales: Decimal
    total_profit: Decimal
    avg_profit_rate: Decimal


class ZoneRankingOut(BaseModel):
    rank: int
    zone_code: str
    shipment_count: int
    total_weight: Decimal
    total_purchase: Decimal
    total_sales: Decimal
    total_profit: Decimal
    avg_profit: Decimal
    profit_rate: Decimal
