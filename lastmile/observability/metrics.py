# lastmile/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

router = APIRouter(tags=["observability"])

imports_parsed_counter = Counter(
    "lastmile_imports_parsed_total",
    "Aantal geparste rate sheets",
    ["file_type", "result"],  # result: success|parse_error
)

imports_confirmed_counter = Counter(
    "lastmile_imports_confirmed_total",
    "Aantal bevestigde imports",
    ["result"],  # success|partial|blocked|expired
)

tiers_written_counter = Counter(
    "lastmile_tiers_written_total",
    "Rate tiers weggeschreven bij confirm",
    ["result"],  # success|failed
)

quotes_counter = Counter(
    "lastmile_quotes_total",
    "Prijsberekeningen per uitkomst",
    ["result"],  # success|ZONE_NOT_FOUND|NO_ACTIVE_RATE_CARD|NO_MATCHING_RATE|INVALID_REQUEST
)

quote_latency_hist = Histogram(
    "lastmile_quote_latency_seconds",
    "Latency van calculate_freight",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
