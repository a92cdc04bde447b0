"""Overall confidence of a ledger mapping."""

from collections.abc import Sequence

from docledger.extraction.schema import ExtractedData
from docledger.mapping.schema import LineItemMapping

BASE_SCORE = 0.5
DEFAULT_MAPPING_CONFIDENCE = 0.7
KNOWN_DATA_FLOOR = 0.55
MINIMUM_FLOOR = 0.4
MAXIMUM_CONFIDENCE = 0.99


def data_quality_score(extracted: ExtractedData) -> float:
    """Base 0.5 plus fixed increments for each strong signal that was extracted."""
    score = BASE_SCORE
    if extracted.has_known_supplier:
        score += 0.10
    if extracted.total_amount > 0:
        score += 0.15
    if extracted.document_date:
        score += 0.05
    if extracted.has_real_document_number:
        score += 0.10
    if extracted.vat_amount and extracted.vat_amount > 0:
        score += 0.05
    return score


def overall_confidence(extracted: ExtractedData, mappings: Sequence[LineItemMapping]) -> float:
    """Blend data quality, extraction confidence and mean line confidence.

    Floors at 0.55 when supplier and total are known (0.4 otherwise) and
    never reports more than 0.99.
    """
    extraction = max(extracted.extraction_confidence, data_quality_score(extracted))
    if mappings:
        mapping = sum(m.suggested_account.confidence for m in mappings) / len(mappings)
    else:
        mapping = DEFAULT_MAPPING_CONFIDENCE

    combined = extraction * 0.5 + mapping * 0.5
    floor = (
        KNOWN_DATA_FLOOR
        if extracted.has_known_supplier and extracted.total_amount > 0
        else MINIMUM_FLOOR
    )
    return round(min(MAXIMUM_CONFIDENCE, max(floor, combined)), 2)
