"""Document-level cost-center inference.

Priority chain, first hit wins:
1. known supplier with a cost-center hint
2. receipts that look like meals/drinks -> representation
3. type default (invoices -> administration)
4. None: needs human classification
"""

from collections.abc import Callable, Sequence

from docledger.classification.schema import DocumentType
from docledger.mapping.reference import ReferenceData

ADMINISTRATION_COST_CENTER = "ADM"
MIN_SUMMARY_KEYWORD_HITS = 2

CostCenterResolver = Callable[
    [ReferenceData, DocumentType, str, Sequence[str], str], str | None
]


def is_representation_receipt(
    reference: ReferenceData, supplier: str, descriptions: Sequence[str], summary: str
) -> bool:
    """Decide whether a receipt is a meal/beverage receipt.

    One keyword in the supplier name or in any line description is enough;
    the free-text summary needs at least two distinct keywords.
    """
    if reference.representation_hits(supplier) > 0:
        return True
    if any(reference.representation_hits(description) > 0 for description in descriptions):
        return True
    return reference.representation_hits(summary) >= MIN_SUMMARY_KEYWORD_HITS


def _from_known_supplier(
    reference: ReferenceData,
    document_type: DocumentType,
    supplier: str,
    descriptions: Sequence[str],
    summary: str,
) -> str | None:
    known = reference.find_supplier(supplier)
    return known.cost_center if known else None


def _from_representation(
    reference: ReferenceData,
    document_type: DocumentType,
    supplier: str,
    descriptions: Sequence[str],
    summary: str,
) -> str | None:
    if document_type != DocumentType.RECEIPT:
        return None
    if is_representation_receipt(reference, supplier, descriptions, summary):
        return reference.representation_cost_center
    return None


def _from_document_type(
    reference: ReferenceData,
    document_type: DocumentType,
    supplier: str,
    descriptions: Sequence[str],
    summary: str,
) -> str | None:
    return ADMINISTRATION_COST_CENTER if document_type == DocumentType.INVOICE else None


COST_CENTER_RESOLVERS: tuple[CostCenterResolver, ...] = (
    _from_known_supplier,
    _from_representation,
    _from_document_type,
)


def suggest_cost_center(
    reference: ReferenceData,
    document_type: DocumentType,
    supplier: str,
    descriptions: Sequence[str],
    summary: str,
) -> str | None:
    """Suggest a cost center for the whole document, or None when undecided."""
    for resolver in COST_CENTER_RESOLVERS:
        cost_center = resolver(reference, document_type, supplier, descriptions, summary)
        if cost_center:
            return cost_center
    return None
