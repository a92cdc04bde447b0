"""Stage 2: structured data extractor.

Sends the classified document with a type-specific rubric to the
collaborator and normalizes the returned JSON: amounts written in any
locale become floats, dates become ISO strings and currencies become
ISO 4217 codes. An unusable reply or a failed call yields a minimal empty
extraction with confidence 0.5 instead of an error.
"""

import logging
import time
from datetime import date
from typing import Any

from docledger.classification.schema import DocumentType
from docledger.extraction.schema import (
    AUTO_NUMBER_PREFIX,
    UNKNOWN_SUPPLIER,
    ExtractedData,
    ExtractedLineItem,
    PaymentMethod,
)
from docledger.extraction.templates import build_extraction_prompt
from docledger.llm.base import CollaboratorError, CompletionProvider
from docledger.shared.config import Settings, get_settings
from docledger.shared.document import DocumentInput
from docledger.shared.parsing import (
    Fallback,
    Parsed,
    ParseOutcome,
    clamp,
    extract_json_object,
    normalize_currency,
    parse_date,
    parse_number,
    parse_optional_number,
)

logger = logging.getLogger(__name__)

EXTRACTION_TEXT_LIMIT = 2000
EMPTY_EXTRACTION_CONFIDENCE = 0.5
DEFAULT_EXTRACTION_CONFIDENCE = 0.7

_PAYMENT_METHOD_ALIASES = {
    "kort": PaymentMethod.CARD,
    "visa": PaymentMethod.CARD,
    "mastercard": PaymentMethod.CARD,
    "kontant": PaymentMethod.CASH,
    "kontanter": PaymentMethod.CASH,
    "faktura": PaymentMethod.INVOICE,
}


def create_empty_extraction(
    document_type: DocumentType, base_currency: str = "SEK", today: date | None = None
) -> ExtractedData:
    """Minimal extraction used when the collaborator reply is unusable.

    Args:
        document_type: Classified document type (named in the summary)
        base_currency: Currency assumed for the empty record
        today: Reference date for the document date (defaults to date.today())

    Returns:
        ExtractedData with unknown supplier, zero total and confidence 0.5
    """
    return ExtractedData(
        supplier=UNKNOWN_SUPPLIER,
        document_number=_auto_document_number(),
        document_date=parse_date(None, today=today),
        currency=normalize_currency(None, None, base_currency),
        total_amount=0.0,
        line_items=[],
        raw_text_summary=f"could not extract data from {document_type.value}",
        extraction_confidence=EMPTY_EXTRACTION_CONFIDENCE,
    )


def _auto_document_number() -> str:
    return f"{AUTO_NUMBER_PREFIX}{int(time.time() * 1000)}"


def _optional_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


def coerce_payment_method(value: Any) -> PaymentMethod | None:
    """Map a reported payment method onto the enum; unrecognised text becomes OTHER."""
    text = _optional_text(value)
    if text is None:
        return None
    key = text.lower()
    try:
        return PaymentMethod(key)
    except ValueError:
        pass
    for alias, method in _PAYMENT_METHOD_ALIASES.items():
        if alias in key:
            return method
    return PaymentMethod.OTHER


def _card_last_four(value: Any) -> str | None:
    text = _optional_text(value)
    if text is None:
        return None
    digits = "".join(ch for ch in text if ch.isdigit())
    return digits[-4:] if len(digits) >= 4 else None


def _line_item_from_dict(item: dict[str, Any], absolute: bool) -> ExtractedLineItem:
    net = item.get("netAmount")
    if net is None:
        net = item.get("amount")
    if net is None:
        net = item.get("unitPrice")

    net_amount = parse_number(net)
    vat_amount = parse_optional_number(item.get("vatAmount"))
    if absolute:
        net_amount = abs(net_amount)
        vat_amount = abs(vat_amount) if vat_amount is not None else None
    return ExtractedLineItem(
        description=_optional_text(item.get("description")) or "",
        quantity=parse_optional_number(item.get("quantity")),
        unit_price=parse_optional_number(item.get("unitPrice")),
        net_amount=net_amount,
        vat_rate=parse_optional_number(item.get("vatRate")),
        vat_amount=vat_amount,
    )


def _line_items_from(data: dict[str, Any], absolute: bool) -> list[ExtractedLineItem]:
    raw_items = data.get("lineItems")
    if not isinstance(raw_items, list):
        return []
    return [_line_item_from_dict(item, absolute) for item in raw_items if isinstance(item, dict)]


def extraction_from_dict(
    data: dict[str, Any],
    document_type: DocumentType,
    base_currency: str = "SEK",
    today: date | None = None,
) -> ExtractedData:
    """Normalize the collaborator's (partial) JSON into ExtractedData.

    Credit notes are frequently reported with negative amounts; they are
    stored as absolute values so the voucher follows the invoice layout.

    Args:
        data: Parsed JSON object from the collaborator
        document_type: Classified document type
        base_currency: Currency used when none can be detected
        today: Reference date for unparseable dates

    Returns:
        Validated ExtractedData
    """
    credit_note = document_type == DocumentType.CREDIT_NOTE

    total = abs(parse_number(data.get("totalAmount")))
    vat_amount = parse_optional_number(data.get("vatAmount"))
    net_amount = parse_optional_number(data.get("netAmount"))
    if credit_note:
        vat_amount = abs(vat_amount) if vat_amount is not None else None
        net_amount = abs(net_amount) if net_amount is not None else None

    if net_amount is None and total > 0 and vat_amount is not None:
        net_amount = round(total - vat_amount, 2)

    line_items = _line_items_from(data, absolute=credit_note)

    if total == 0 and line_items:
        total = round(abs(sum(item.net_amount for item in line_items)), 2)
        logger.warning(
            f"Total amount missing; reconciled {total:.2f} from {len(line_items)} line items"
        )

    document_number = _optional_text(data.get("documentNumber")) or _auto_document_number()
    due_date = _optional_text(data.get("dueDate"))

    return ExtractedData(
        supplier=_optional_text(data.get("supplier")) or UNKNOWN_SUPPLIER,
        supplier_org_number=_optional_text(data.get("supplierOrgNumber")),
        supplier_country=_optional_text(data.get("supplierCountry")),
        supplier_vat_id=_optional_text(data.get("supplierVatId")),
        document_number=document_number,
        document_date=parse_date(data.get("documentDate"), today=today),
        currency=normalize_currency(
            data.get("currency"), data.get("detectedCurrencySymbol"), base_currency
        ),
        total_amount=total,
        net_amount=net_amount,
        vat_amount=vat_amount,
        vat_rate=parse_optional_number(data.get("vatRate")),
        due_date=parse_date(due_date, today=today) if due_date else None,
        payment_reference=_optional_text(data.get("paymentReference")),
        bankgiro=_optional_text(data.get("bankgiro")),
        plusgiro=_optional_text(data.get("plusgiro")),
        payment_method=coerce_payment_method(data.get("paymentMethod")),
        card_last_four=_card_last_four(data.get("cardLastFour")),
        line_items=line_items,
        raw_text_summary=_optional_text(data.get("rawTextSummary")) or "",
        extraction_confidence=clamp(
            parse_number(data.get("extractionConfidence"))
            if data.get("extractionConfidence") is not None
            else DEFAULT_EXTRACTION_CONFIDENCE
        ),
        multiple_documents_detected=data.get("multipleDocumentsDetected") is True,
    )


def parse_extraction_response(
    text: str,
    document_type: DocumentType,
    base_currency: str = "SEK",
    today: date | None = None,
) -> ParseOutcome[ExtractedData]:
    """Parse the collaborator reply into extracted data.

    Args:
        text: Raw reply, expected to embed one JSON object
        document_type: Classified document type
        base_currency: Currency used when none can be detected
        today: Reference date for unparseable dates

    Returns:
        Parsed extraction, or Fallback carrying the empty extraction
    """
    data = extract_json_object(text)
    if data is None:
        return Fallback(
            create_empty_extraction(document_type, base_currency, today=today),
            reason="no JSON object in extraction response",
        )
    return Parsed(extraction_from_dict(data, document_type, base_currency, today=today))


class DataExtractor:
    """Extracts bookkeeping fields from a classified document."""

    def __init__(self, provider: CompletionProvider, settings: Settings | None = None) -> None:
        self._provider = provider
        self._settings = settings or get_settings()

    def extract(self, document: DocumentInput, document_type: DocumentType) -> ExtractedData:
        """Extract structured data from a document.

        Args:
            document: Document bytes and/or text
            document_type: Type decided by the classifier

        Returns:
            Normalized ExtractedData (empty extraction on collaborator failure)
        """
        base_currency = self._settings.base_currency
        prompt = build_extraction_prompt(
            document_type, document.text_excerpt(EXTRACTION_TEXT_LIMIT)
        )

        try:
            response = self._provider.complete(prompt, document=document, max_tokens=2048)
        except CollaboratorError as e:
            logger.error(f"Extraction call failed: {e}")
            return create_empty_extraction(document_type, base_currency)

        outcome = parse_extraction_response(response, document_type, base_currency)
        if isinstance(outcome, Fallback):
            logger.warning(f"{outcome.reason}: {response[:200]!r}")
            return outcome.value

        data = outcome.value
        logger.info(
            f"Extracted {document_type.value}: supplier={data.supplier!r}, "
            f"total={data.total_amount:.2f} {data.currency}, "
            f"{len(data.line_items)} line items"
        )
        return data
