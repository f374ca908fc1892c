from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence, Tuple

from lastmile.domain.models import AppliedSurcharge, ChargeType, SurchargeRecord

D = Decimal
HUNDRED = D("100")


def money(value: D) -> D:
    return value.quantize(D("0.01"), rounding=ROUND_HALF_UP)


def apply_surcharges(
    purchase_cost: D,
    sales_amount: D,
    surcharges: Sequence[SurchargeRecord],
) -> Tuple[List[AppliedSurcharge], D, D]:
    """
    Mandatory surcharges only. Fixed adds the side's own amount; percentage
    adds pct/100 of the base on the same side (purchase and sales apart).
    Returns (applied, total purchase surcharge, total sales surcharge).
    """
    applied: List[AppliedSurcharge] = []
    total_p = D("0")
    total_s = D("0")

    for s in surcharges:
        if not s.is_mandatory:
            continue
        if s.charge_type == ChargeType.PERCENTAGE:
            p = money(purchase_cost * s.percentage / HUNDRED)
            v = money(sales_amount * s.percentage / HUNDRED)
        else:
            p = money(s.purchase_amount)
            v = money(s.sales_amount)

        total_p += p
        total_s += v
        applied.append(
            AppliedSurcharge(
                code=s.code,
                name=s.name,
                charge_type=s.charge_type,
                purchase_amount=p,
                sales_amount=v,
            )
        )

    return applied, total_p, total_s
