"""Trust score for a candidate resource."""
from __future__ import annotations

from domain.models import AddressResolution, OSMTagSet, RawProviderRecord

MIN_SCORE = 0.2
MAX_SCORE = 1.0
ADDRESS_FLOOR = 0.3
EVIDENCE_BONUS = 0.1
SHORT_NAME_PENALTY = 0.1
MISSING_NAME_PENALTY = 0.05


def score_resource(
    record: RawProviderRecord,
    resolution: AddressResolution,
    tags: OSMTagSet,
) -> float:
    """
    Score how trustworthy a candidate is, in [0.2, 1.0].

    The address confidence sets the starting point; each piece of listing
    metadata (descriptive name, phone, website, street, opening hours) adds
    a fixed bonus. Very short or missing names are penalised.
    """
    confidence = max(ADDRESS_FLOOR, resolution.confidence)
    name = record.name

    evidence = (
        name is not None and len(name) > 3,
        bool(tags.phone),
        bool(tags.website),
        bool(tags.addr_street),
        bool(tags.opening_hours),
    )
    confidence += EVIDENCE_BONUS * sum(evidence)

    if name is None:
        confidence -= MISSING_NAME_PENALTY
    elif len(name) < 3:
        confidence -= SHORT_NAME_PENALTY

    return round(max(MIN_SCORE, min(MAX_SCORE, confidence)), 4)
