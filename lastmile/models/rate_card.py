# lastmile/models/rate_card.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from lastmile.db import Base

MONEY = Numeric(12, 2)
WEIGHT = Numeric(10, 3)


class Carrier(Base):
    __tablename__ = "last_mile_carriers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Carrier id={self.id} code={self.code} status={self.status}>"


class Zone(Base):
    __tablename__ = "last_mile_zones"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    carrier_id: Mapped[int] = mapped_column(
        ForeignKey("last_mile_carriers.id", ondelete="CASCADE"), index=True, nullable=False
    )
    zone_code: Mapped[str] = mapped_column(String(50), nullable=False)
    zone_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    # lijsten, als JSON opgeslagen; decoderen gebeurt 1x in de store
    postal_prefixes: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    countries: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    __table_args__ = (UniqueConstraint("carrier_id", "zone_code", name="uq_zone_carrier_code"),)


class RateCard(Base):
    __tablename__ = "rate_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    carrier_id: Mapped[int] = mapped_column(
        ForeignKey("last_mile_carriers.id"), index=True, nullable=False
    )
    rate_type: Mapped[str] = mapped_column(String(50), nullable=False, default="last_mile")
    service_type: Mapped[str] = mapped_column(String(50), nullable=False, default="standard")

    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<RateCard id={self.id} code={self.code} carrier={self.carrier_id} status={self.status}>"


class RateCardTier(Base):
    __tablename__ = "rate_card_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rate_card_id: Mapped[int] = mapped_column(
        ForeignKey("rate_cards.id", ondelete="CASCADE"), index=True, nullable=False
    )
    zone_code: Mapped[str] = mapped_column(String(50), nullable=False)

    weight_from: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)
    weight_to: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)

    purchase_price: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    purchase_min_charge: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    sales_price: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    sales_min_charge: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    price_unit: Mapped[str] = mapped_column(String(20), nullable=False, default="per_shipment")
    margin_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    __table_args__ = (
        UniqueConstraint(
            "rate_card_id", "zone_code", "weight_from", "weight_to", name="uq_tier_band"
        ),
    )


class RateCardSurcharge(Base):
    __tablename__ = "rate_card_surcharges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rate_card_id: Mapped[int] = mapped_column(
        ForeignKey("rate_cards.id", ondelete="CASCADE"), index=True, nullable=False
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    charge_type: Mapped[str] = mapped_column(String(20), nullable=False, default="fixed")

    purchase_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    sales_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    percentage: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False, default=0)

    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")


class RateImportLog(Base):
    __tablename__ = "rate_import_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rate_card_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("rate_cards.id", ondelete="SET NULL"), index=True, nullable=True
    )
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fail_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    error_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    imported_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Shipment(Base):
    __tablename__ = "last_mile_shipments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shipment_no: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    carrier_id: Mapped[int] = mapped_column(
        ForeignKey("last_mile_carriers.id"), index=True, nullable=False
    )
    zone_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)

    purchase_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    sales_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    profit_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="created")

    # expliciet gezet bij record_shipment zodat maand-buckets testbaar zijn
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
