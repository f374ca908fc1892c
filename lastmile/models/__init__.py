# ORM tables for the rate-card store

from .rate_card import (
    Carrier,
    RateCard,
    RateCardSurcharge,
    RateCardTier,
    RateImportLog,
    Shipment,
    Zone,
)

__all__ = [
    "Carrier",
    "Zone",
    "RateCard",
    "RateCardTier",
    "RateCardSurcharge",
    "RateImportLog",
    "Shipment",
]
