from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from lastmile.core.settings import settings
from lastmile.db import SessionLocal
from lastmile.importers.pdf import HttpOcrClient, OcrClient
from lastmile.importers.preview_store import PreviewStore
from lastmile.importers.service import ImportService
from lastmile.pricing.engine import PricingEngine
from lastmile.pricing.profit import ProfitAnalyzer
from lastmile.repositories.rate_cards import RateCardStore


@lru_cache
def get_store() -> RateCardStore:
    return RateCardStore(SessionLocal)


@lru_cache
def get_preview_store() -> PreviewStore:
    return PreviewStore(
        ttl_seconds=settings.PREVIEW_TTL_SECONDS,
        max_entries=settings.PREVIEW_MAX_ENTRIES,
    )


@lru_cache
def get_ocr_client() -> Optional[OcrClient]:
    # zonder endpoint/key geen client; PDF/afbeelding geeft dan OcrNotConfigured
    if not settings.ocr_configured:
        return None
    return HttpOcrClient.from_settings(settings)


def get_import_service(
    store: RateCardStore = Depends(get_store),
    previews: PreviewStore = Depends(get_preview_store),
    ocr_client: Optional[OcrClient] = Depends(get_ocr_client),
) -> ImportService:
    return ImportService(store, ocr_client, previews, settings)


def get_engine(store: RateCardStore = Depends(get_store)) -> PricingEngine:
    return PricingEngine(store, volumetric_factor=settings.VOLUMETRIC_FACTOR)


def get_profit_analyzer(store: RateCardStore = Depends(get_store)) -> ProfitAnalyzer:
    return ProfitAnalyzer(store)
