# lastmile/routers/profit.py
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from lastmile.dependencies import get_profit_analyzer
from lastmile.pricing.profit import ProfitAnalyzer
from lastmile.schemas.profit import (
    MonthlyProfitOut,
    ProfitReportOut,
    TierProfitOut,
    ZoneProfitOut,
    ZoneRankingOut,
)

router = APIRouter(prefix="/profit", tags=["profit"])


@router.get("/rate-cards/{rate_card_id}", response_model=ProfitReportOut)
async def rate_card_profit(
    rate_card_id: int, analyzer: ProfitAnalyzer = Depends(get_profit_analyzer)
) -> ProfitReportOut:
    report = await analyzer.rate_card_profit(rate_card_id)
    return ProfitReportOut(
        rate_card_id=rate_card_id,
        tier_count=report.tier_count,
        priced_count=report.priced_count,
        insufficient_data=report.insufficient_data,
        min_profit=report.min_profit,
        max_profit=report.max_profit,
        avg_profit=report.avg_profit,
        min_profit_rate=report.min_profit_rate,
        max_profit_rate=report.max_profit_rate,
        avg_profit_rate=report.avg_profit_rate,
        details=[
            TierProfitOut(
                zone_code=d.zone_code,
                weight_range=d.weight_range,
                purchase_price=d.purchase_price,
                sales_price=d.sales_price,
                profit=d.profit,
                profit_rate=d.profit_rate,
            )
            for d in report.details
        ],
    )


@router.get("/rate-cards/{rate_card_id}/zones", response_model=List[ZoneProfitOut])
async def rate_card_profit_by_zone(
    rate_card_id: int, analyzer: ProfitAnalyzer = Depends(get_profit_analyzer)
) -> List[ZoneProfitOut]:
    zones = await analyzer.rate_card_profit_by_zone(rate_card_id)
    return [ZoneProfitOut(zone_code=code, **z.__dict__) for code, z in sorted(zones.items())]


@router.get("/monthly", response_model=List[MonthlyProfitOut])
async def monthly(
    carrier_id: Optional[int] = None,
    months: int = Query(12, ge=1, le=60),
    analyzer: ProfitAnalyzer = Depends(get_profit_analyzer),
) -> List[MonthlyProfitOut]:
    trend = await analyzer.monthly_trend(carrier_id, months=months)
    return [MonthlyProfitOut(**m.__dict__) for m in trend]


@router.get("/zones", response_model=List[ZoneRankingOut])
async def zone_ranking(
    carrier_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    analyzer: ProfitAnalyzer = Depends(get_profit_analyzer),
) -> List[ZoneRankingOut]:
    ranking = await analyzer.zone_ranking(carrier_id, start=start, end=end)
    return [ZoneRankingOut(**r.__dict__) for r in ranking]
