from __future__ import annotations

from typing import Optional, Sequence

from lastmile.domain.models import ZoneRule


def _clean_postal(code: Optional[str]) -> str:
    return "".join((code or "").split()).upper()


def match_zone(
    zones: Sequence[ZoneRule],
    postal_code: Optional[str],
    country: Optional[str] = None,
) -> Optional[ZoneRule]:
    """
    First zone (in the given order) whose postal prefixes match, or failing
    that whose country set contains `country`. The prefix check and the
    country check are done per zone, so an earlier country-only zone beats a
    later prefix zone; order zones by sort_order accordingly.
    """
    postal = _clean_postal(postal_code)
    cc = (country or "").strip().upper()

    for zone in zones:
        if postal and any(postal.startswith(_clean_postal(p)) for p in zone.postal_prefixes if p):
            return zone
        if cc and cc in zone.countries:
            return zone
    return None
