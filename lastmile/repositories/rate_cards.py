from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, StatementError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lastmile.core.logging_config import logger
from lastmile.domain.models import (
    CarrierRecord,
    ChargeType,
    ImportOutcome,
    PriceUnit,
    RateCardInfo,
    RateCardRecord,
    RateTierCandidate,
    ShipmentRecord,
    SurchargeRecord,
    SurchargeSpec,
    TierRecord,
    ZoneRule,
)
from lastmile.models import (
    Carrier,
    RateCard,
    RateCardSurcharge,
    RateCardTier,
    RateImportLog,
    Shipment,
    Zone,
)
from lastmile.observability.metrics import tiers_written_counter

D = Decimal

MAX_LOGGED_ERRORS = 20
# generated codes: next free number is tried this many times
CODE_ATTEMPTS = 5


def _weight(v: Any) -> Optional[D]:
    """5.000 -> 5, 0.500 -> 0.5 (Numeric columns come back padded to their scale)."""
    if v is None:
        return None
    d = v if isinstance(v, D) else D(str(v))
    if d == d.to_integral_value():
        return d.quantize(D(1))
    return d.normalize()


def _money(v: Any) -> Optional[D]:
    if v is None:
        return None
    return v if isinstance(v, D) else D(str(v))


def _carrier_record(c: Carrier) -> CarrierRecord:
    return CarrierRecord(id=c.id, code=c.code, name=c.name, status=c.status)


def _zone_rule(z: Zone) -> ZoneRule:
    prefixes = tuple(str(p).strip() for p in (z.postal_prefixes or []) if str(p).strip())
    countries = frozenset(str(c).strip().upper() for c in (z.countries or []) if str(c).strip())
    return ZoneRule(
        id=z.id,
        carrier_id=z.carrier_id,
        zone_code=z.zone_code,
        zone_name=z.zone_name or z.zone_code,
        postal_prefixes=prefixes,
        countries=countries,
        sort_order=z.sort_order,
    )


def _tier_record(t: RateCardTier) -> TierRecord:
    return TierRecord(
        id=t.id,
        rate_card_id=t.rate_card_id,
        zone_code=t.zone_code,
        weight_from=_weight(t.weight_from),
        weight_to=_weight(t.weight_to),
        purchase_price=_money(t.purchase_price),
        sales_price=_money(t.sales_price),
        price_unit=PriceUnit(t.price_unit),
        purchase_min_charge=_money(t.purchase_min_charge),
        sales_min_charge=_money(t.sales_min_charge),
        margin_rate=_money(t.margin_rate),
    )


def _surcharge_record(s: RateCardSurcharge) -> SurchargeRecord:
    return SurchargeRecord(
        id=s.id,
        rate_card_id=s.rate_card_id,
        code=s.code,
        name=s.name,
        charge_type=ChargeType(s.charge_type),
        purchase_amount=_money(s.purchase_amount) or D("0"),
        sales_amount=_money(s.sales_amount) or D("0"),
        percentage=_money(s.percentage) or D("0"),
        is_mandatory=bool(s.is_mandatory),
    )


def _rate_card_record(
    rc: RateCard,
    tiers: Iterable[RateCardTier] = (),
    surcharges: Iterable[RateCardSurcharge] = (),
) -> RateCardRecord:
    return RateCardRecord(
        id=rc.id,
        code=rc.code,
        name=rc.name,
        carrier_id=rc.carrier_id,
        rate_type=rc.rate_type,
        service_type=rc.service_type,
        valid_from=rc.valid_from,
        valid_until=rc.valid_until,
        currency=rc.currency,
        status=rc.status,
        is_default=bool(rc.is_default),
        created_at=rc.created_at,
        tiers=tuple(_tier_record(t) for t in tiers),
        surcharges=tuple(_surcharge_record(s) for s in surcharges),
    )


def _shipment_record(s: Shipment, carrier_code: str) -> ShipmentRecord:
    return ShipmentRecord(
        id=s.id,
        shipment_no=s.shipment_no,
        carrier_id=s.carrier_id,
        carrier_code=carrier_code,
        zone_code=s.zone_code,
        weight=_weight(s.weight),
        purchase_cost=_money(s.purchase_cost),
        sales_amount=_money(s.sales_amount),
        profit_amount=_money(s.profit_amount),
        currency=s.currency,
        status=s.status,
        created_at=s.created_at,
    )


class RateCardStore:
    """
    Persistence for carriers, zones, rate cards and shipments.

    Every method opens its own session, so concurrent quotes never share a
    session (or a transaction) with an import in flight.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    # -----------------------------
    # Carriers / zones
    # -----------------------------

    async def create_carrier(self, code: str, name: str, *, status: str = "active") -> CarrierRecord:
        async with self._session_factory() as session:
            async with session.begin():
                carrier = Carrier(code=code, name=name, status=status)
                session.add(carrier)
                await session.flush()
                return _carrier_record(carrier)

    async def get_carrier(self, carrier_id: int) -> Optional[CarrierRecord]:
        async with self._session_factory() as session:
            carrier = await session.get(Carrier, carrier_id)
            return _carrier_record(carrier) if carrier else None

    async def list_carriers(self, carrier_ids: Optional[Sequence[int]] = None) -> List[CarrierRecord]:
        """Active carriers, optionally limited to `carrier_ids`."""
        stmt = select(Carrier).where(Carrier.status == "active").order_by(Carrier.id)
        if carrier_ids:
            stmt = stmt.where(Carrier.id.in_(list(carrier_ids)))
        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
            return [_carrier_record(c) for c in rows]

    async def create_zones(self, carrier_id: int, zones: Sequence[Mapping[str, Any]]) -> List[ZoneRule]:
        async with self._session_factory() as session:
            async with session.begin():
                created = []
                for i, z in enumerate(zones):
                    zone = Zone(
                        carrier_id=carrier_id,
                        zone_code=z["zone_code"],
                        zone_name=z.get("zone_name") or z["zone_code"],
                        postal_prefixes=list(z.get("postal_prefixes") or []),
                        countries=list(z.get("countries") or []),
                        sort_order=z.get("sort_order", i),
                    )
                    session.add(zone)
                    created.append(zone)
                await session.flush()
                return [_zone_rule(z) for z in created]

    async def list_zones(self, carrier_id: int) -> List[ZoneRule]:
        stmt = (
            select(Zone)
            .where(Zone.carrier_id == carrier_id, Zone.status == "active")
            .order_by(Zone.sort_order, Zone.zone_code)
        )
        async with self._session_factory() as session:
            return [_zone_rule(z) for z in (await session.scalars(stmt)).all()]

    # -----------------------------
    # Rate cards
    # -----------------------------

    async def _next_code(self, session: AsyncSession, carrier_id: int, today: date, skip: int = 0) -> str:
        carrier = await session.get(Carrier, carrier_id)
        carrier_code = (carrier.code if carrier else str(carrier_id)).upper()
        prefix = f"RC-{carrier_code}-{today:%Y%m%d}-"
        count = await session.scalar(
            select(func.count()).select_from(RateCard).where(RateCard.code.like(f"{prefix}%"))
        )
        return f"{prefix}{(count or 0) + 1 + skip:03d}"

    async def generate_rate_card_code(self, carrier_id: int, today: Optional[date] = None) -> str:
        """RC-<CARRIER>-<YYYYMMDD>-NNN"""
        async with self._session_factory() as session:
            return await self._next_code(session, carrier_id, today or date.today())

    async def _add_header(self, session: AsyncSession, info: RateCardInfo, today: date) -> RateCard:
        """
        Flush the rate card header inside a SAVEPOINT.

        A generated code that turns out to be taken is retried with the next
        number; an explicit code is never changed and its IntegrityError
        propagates.
        """
        attempts = 1 if info.code else CODE_ATTEMPTS
        attempt = 0
        while True:
            code = info.code or await self._next_code(session, info.carrier_id, today, skip=attempt)
            card = RateCard(
                code=code,
                name=info.name,
                carrier_id=info.carrier_id,
                rate_type=info.rate_type,
                service_type=info.service_type,
                valid_from=info.valid_from or today,
                valid_until=info.valid_until,
                currency=info.currency,
                status="active",
                is_default=info.is_default,
            )
            try:
                async with session.begin_nested():
                    session.add(card)
                    await session.flush()
            except IntegrityError:
                attempt += 1
                if attempt >= attempts:
                    raise
                logger.info("rate_card_code_taken", rate_card_code=code, attempt=attempt)
            else:
                return card

    async def create_rate_card_with_tiers(
        self,
        info: RateCardInfo,
        tiers: Sequence[RateTierCandidate],
        surcharges: Sequence[SurchargeSpec] = (),
    ) -> ImportOutcome:
        """
        Header, tiers, surcharges and import log in one transaction.

        The header is flushed first; if that fails nothing is written and the
        error propagates. Each tier gets its own SAVEPOINT so a bad row
        (e.g. a duplicate band) is counted and skipped instead of aborting
        the import. Readers only see the card after the single commit.
        """
        today = date.today()
        success = fail = 0
        errors: List[str] = []

        async with self._session_factory() as session:
            async with session.begin():
                await session.connection(execution_options={"sqlite_immediate": True})
                card = await self._add_header(session, info, today)
                card_id = card.id
                code = card.code

                for t in tiers:
                    try:
                        async with session.begin_nested():
                            session.add(
                                RateCardTier(
                                    rate_card_id=card_id,
                                    zone_code=t.zone_code,
                                    weight_from=t.weight_from,
                                    weight_to=t.weight_to,
                                    purchase_price=t.purchase_price,
                                    purchase_min_charge=t.purchase_min_charge,
                                    sales_price=t.sales_price,
                                    sales_min_charge=t.sales_min_charge,
                                    price_unit=(t.price_unit or info.price_unit).value,
                                )
                            )
                            await session.flush()
                    except StatementError as e:
                        fail += 1
                        if len(errors) < MAX_LOGGED_ERRORS:
                            errors.append(f"row {t.row_number}: {e.orig or e}")
                        logger.warning(
                            "tier_insert_failed",
                            rate_card_code=code,
                            row=t.row_number,
                            zone=t.zone_code,
                            error=str(e.orig or e),
                        )
                    else:
                        success += 1

                for s in surcharges:
                    session.add(
                        RateCardSurcharge(
                            rate_card_id=card_id,
                            code=s.code,
                            name=s.name,
                            charge_type=s.charge_type.value,
                            purchase_amount=s.purchase_amount,
                            sales_amount=s.sales_amount,
                            percentage=s.percentage,
                            is_mandatory=s.is_mandatory,
                        )
                    )

                session.add(
                    RateImportLog(
                        rate_card_id=card_id,
                        file_name=info.file_name,
                        file_type=info.file_type,
                        total_records=len(tiers),
                        success_count=success,
                        fail_count=fail,
                        status="completed" if fail == 0 else "partial",
                        error_details="\n".join(errors) or None,
                        imported_by=info.imported_by,
                    )
                )

        tiers_written_counter.labels(result="success").inc(success)
        tiers_written_counter.labels(result="failed").inc(fail)
        logger.info(
            "rate_card_created",
            rate_card_id=card_id,
            rate_card_code=code,
            carrier_id=info.carrier_id,
            total=len(tiers),
            success=success,
            failed=fail,
        )
        return ImportOutcome(
            rate_card_id=card_id,
            rate_card_code=code,
            total_records=len(tiers),
            success_count=success,
            fail_count=fail,
        )

    async def get_rate_card(self, rate_card_id: int) -> Optional[RateCardRecord]:
        """Header plus tiers and surcharges."""
        async with self._session_factory() as session:
            rc = await session.get(RateCard, rate_card_id)
            if rc is None:
                return None
            tiers = (
                await session.scalars(
                    select(RateCardTier)
                    .where(RateCardTier.rate_card_id == rate_card_id)
                    .order_by(RateCardTier.zone_code, RateCardTier.weight_from)
                )
            ).all()
            surcharges = (
                await session.scalars(
                    select(RateCardSurcharge)
                    .where(RateCardSurcharge.rate_card_id == rate_card_id)
                    .order_by(RateCardSurcharge.id)
                )
            ).all()
            return _rate_card_record(rc, tiers, surcharges)

    async def get_active_rate_card(
        self,
        carrier_id: int,
        on_date: Optional[date] = None,
        service_type: Optional[str] = None,
    ) -> Optional[RateCardRecord]:
        """Active card whose window covers `on_date`; default card first, then newest."""
        on_date = on_date or date.today()
        stmt = (
            select(RateCard)
            .where(
                RateCard.carrier_id == carrier_id,
                RateCard.status == "active",
                RateCard.valid_from <= on_date,
                or_(RateCard.valid_until.is_(None), RateCard.valid_until >= on_date),
            )
            .order_by(RateCard.is_default.desc(), RateCard.created_at.desc(), RateCard.id.desc())
            .limit(1)
        )
        if service_type:
            stmt = stmt.where(RateCard.service_type == service_type)
        async with self._session_factory() as session:
            rc = (await session.scalars(stmt)).first()
            return _rate_card_record(rc) if rc else None

    async def deactivate_rate_card(self, rate_card_id: int) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                res = await session.execute(
                    update(RateCard).where(RateCard.id == rate_card_id).values(status="inactive")
                )
                return res.rowcount > 0

    # -----------------------------
    # Tiers / surcharges
    # -----------------------------

    async def find_tier(self, rate_card_id: int, zone_code: str, weight: D) -> Optional[TierRecord]:
        """Band with weight_from <= weight <= weight_to (lowest band first)."""
        stmt = (
            select(RateCardTier)
            .where(
                RateCardTier.rate_card_id == rate_card_id,
                RateCardTier.zone_code == zone_code,
                RateCardTier.status == "active",
                RateCardTier.weight_from <= weight,
                RateCardTier.weight_to >= weight,
            )
            .order_by(RateCardTier.weight_from)
            .limit(1)
        )
        async with self._session_factory() as session:
            t = (await session.scalars(stmt)).first()
            return _tier_record(t) if t else None

    async def find_top_tier(self, rate_card_id: int, zone_code: str) -> Optional[TierRecord]:
        """Band with the highest weight_to in the zone."""
        stmt = (
            select(RateCardTier)
            .where(
                RateCardTier.rate_card_id == rate_card_id,
                RateCardTier.zone_code == zone_code,
                RateCardTier.status == "active",
            )
            .order_by(RateCardTier.weight_to.desc(), RateCardTier.weight_from.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            t = (await session.scalars(stmt)).first()
            return _tier_record(t) if t else None

    async def list_tiers(self, rate_card_id: int, zone_code: Optional[str] = None) -> List[TierRecord]:
        stmt = (
            select(RateCardTier)
            .where(RateCardTier.rate_card_id == rate_card_id, RateCardTier.status == "active")
            .order_by(RateCardTier.zone_code, RateCardTier.weight_from)
        )
        if zone_code:
            stmt = stmt.where(RateCardTier.zone_code == zone_code)
        async with self._session_factory() as session:
            return [_tier_record(t) for t in (await session.scalars(stmt)).all()]

    async def get_surcharges(self, rate_card_id: int, *, mandatory_only: bool = False) -> List[SurchargeRecord]:
        stmt = (
            select(RateCardSurcharge)
            .where(RateCardSurcharge.rate_card_id == rate_card_id, RateCardSurcharge.status == "active")
            .order_by(RateCardSurcharge.id)
        )
        if mandatory_only:
            stmt = stmt.where(RateCardSurcharge.is_mandatory.is_(True))
        async with self._session_factory() as session:
            return [_surcharge_record(s) for s in (await session.scalars(stmt)).all()]

    # -----------------------------
    # Shipments
    # -----------------------------

    async def record_shipment(
        self,
        *,
        shipment_no: str,
        carrier_id: int,
        weight: D,
        purchase_cost: D,
        sales_amount: D,
        zone_code: Optional[str] = None,
        currency: str = "EUR",
        status: str = "created",
        created_at: Optional[datetime] = None,
    ) -> ShipmentRecord:
        async with self._session_factory() as session:
            async with session.begin():
                carrier = await session.get(Carrier, carrier_id)
                shipment = Shipment(
                    shipment_no=shipment_no,
                    carrier_id=carrier_id,
                    zone_code=zone_code,
                    weight=weight,
                    purchase_cost=purchase_cost,
                    sales_amount=sales_amount,
                    profit_amount=sales_amount - purchase_cost,
                    currency=currency,
                    status=status,
                    created_at=created_at or datetime.now(timezone.utc),
                )
                session.add(shipment)
                await session.flush()
                return _shipment_record(shipment, carrier.code if carrier else "")

    async def list_shipments(
        self,
        carrier_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ShipmentRecord]:
        """Shipments with start <= created_at < end, oldest first."""
        stmt = (
            select(Shipment, Carrier.code)
            .join(Carrier, Carrier.id == Shipment.carrier_id)
            .order_by(Shipment.created_at, Shipment.id)
        )
        if carrier_id is not None:
            stmt = stmt.where(Shipment.carrier_id == carrier_id)
        if start is not None:
            stmt = stmt.where(Shipment.created_at >= start)
        if end is not None:
            stmt = stmt.where(Shipment.created_at < end)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
            return [_shipment_record(s, code) for s, code in rows]
