"""Stage 1: document type classifier.

Asks the collaborator what kind of bookkeeping document it is looking at.
No data is extracted here. The reply is parsed defensively: anything that
is not a usable JSON object becomes the default OTHER classification, so
later stages always receive a well-typed result.
"""

import logging
from typing import Any

from docledger.classification.schema import DocumentClassification, DocumentType, ImageQuality
from docledger.llm.base import CollaboratorError, CompletionProvider
from docledger.shared.document import DocumentInput
from docledger.shared.parsing import Fallback, Parsed, ParseOutcome, clamp, extract_json_object

logger = logging.getLogger(__name__)

VISION_TEXT_LIMIT = 1000
TEXT_MODE_LIMIT = 2000

CLASSIFIER_PROMPT = """You are an expert in classifying Swedish bookkeeping documents.

Your ONLY task is to identify what type of document this is. Do NOT extract any amounts or data.

IMPORTANT: Check whether the image contains SEVERAL separate documents (e.g. two receipts side by side).

INVOICE vs RECEIPT
------------------
INVOICE - formal payment demand sent BEFORE payment:
- Text such as "FAKTURA", "Invoice", "Fakturanummer"
- A DUE DATE ("Förfaller", "Betalas senast", "Due date")
- Payment details: Bankgiro, Plusgiro, OCR number, IBAN
- Supplier organisation number or VAT number
- Usually A4 with a professional layout

RECEIPT - confirmation of a COMPLETED payment:
- Text such as "KVITTO", "Kassakvitto", "Receipt", "GODKÄNT"
- Payment method: "Kort", "Kontant", "Swish", masked card number (****1234)
- Date AND time on the same line (e.g. "2024-01-15 14:32")
- Restaurant receipts: "Servitör", "Bord", food and drink items
- Fuel receipts: "Pump", "Liter"; shop receipts: barcodes, "RABATT"
- VAT shown as "Moms 12%", "25%", "6%"

Deciding rule: due date + payment details -> pay LATER (INVOICE);
payment confirmation + timestamp -> already PAID (RECEIPT).

OTHER TYPES
-----------
- BANK_STATEMENT: list of bank transactions with balances and an account number
- CREDIT_NOTE: "KREDITNOTA"/"Credit Note", references an original invoice, negative amount
- SALARY_SLIP: "Lönespecifikation"/"Lönebesked", employee name, pay period, "Bruttolön",
  "Nettolön", "Preliminärskatt"
- REMINDER: "PÅMINNELSE"/"Betalningspåminnelse", references an unpaid invoice, often a fee
- CONTRACT: legal terms, signature lines, contract period
- OTHER: anything else or unclear

ANSWER WITH JSON ONLY:
{
  "documentType": "INVOICE" | "RECEIPT" | "BANK_STATEMENT" | "CREDIT_NOTE" | "SALARY_SLIP"
    | "REMINDER" | "CONTRACT" | "OTHER",
  "confidence": 0.0-1.0,
  "reasoning": "Exactly which signals you saw",
  "language": "sv" | "en" | "other",
  "hasHandwriting": true/false,
  "imageQuality": "good" | "medium" | "poor",
  "multipleDocuments": true/false,
  "documentCount": number of documents in the image,
  "keySignals": ["keywords", "you", "found"]
}"""


def default_classification(reasoning: str = "could not classify") -> DocumentClassification:
    """Classification used whenever the collaborator reply is unusable."""
    return DocumentClassification(
        document_type=DocumentType.OTHER,
        confidence=0.3,
        reasoning=reasoning,
        language="sv",
        has_handwriting=False,
        image_quality=ImageQuality.MEDIUM,
        multiple_documents=False,
        document_count=1,
        key_signals=[],
    )


def coerce_document_type(value: Any) -> DocumentType:
    """Map a reported type onto the taxonomy; unknown values become OTHER."""
    if isinstance(value, str):
        try:
            return DocumentType(value.strip().upper())
        except ValueError:
            pass
    return DocumentType.OTHER


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return False


def _as_count(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 1
    return count if count >= 1 else 1


def classification_from_dict(data: dict[str, Any]) -> DocumentClassification:
    """Build a validated classification from the collaborator's (partial) JSON."""
    language = str(data.get("language") or "sv").strip().lower()
    quality = str(data.get("imageQuality") or "").strip().lower()
    signals = data.get("keySignals")

    return DocumentClassification(
        document_type=coerce_document_type(data.get("documentType")),
        confidence=clamp(_as_float(data.get("confidence"), 0.5)),
        reasoning=str(data.get("reasoning") or ""),
        language=language if language in {"sv", "en"} else "other",
        has_handwriting=_as_bool(data.get("hasHandwriting")),
        image_quality=(
            ImageQuality(quality)
            if quality in {q.value for q in ImageQuality}
            else ImageQuality.MEDIUM
        ),
        multiple_documents=_as_bool(data.get("multipleDocuments")),
        document_count=_as_count(data.get("documentCount")),
        key_signals=[str(s) for s in signals] if isinstance(signals, list) else [],
    )


def parse_classification_response(text: str) -> ParseOutcome[DocumentClassification]:
    """Parse the collaborator reply into a classification.

    Args:
        text: Raw reply, expected to embed one JSON object

    Returns:
        Parsed classification, or Fallback carrying the default classification
    """
    data = extract_json_object(text)
    if data is None:
        return Fallback(default_classification(), reason="no JSON object in classifier response")
    return Parsed(classification_from_dict(data))


class DocumentClassifier:
    """Classifies a document through the collaborator."""

    def __init__(self, provider: CompletionProvider) -> None:
        self._provider = provider

    def build_prompt(self, document: DocumentInput) -> str:
        """Build the classifier prompt for vision mode or text mode."""
        if document.is_image:
            excerpt = document.text_excerpt(VISION_TEXT_LIMIT)
            if not excerpt:
                return CLASSIFIER_PROMPT
            return f"{CLASSIFIER_PROMPT}\n\nSUPPLEMENTARY OCR TEXT (for help):\n{excerpt}"
        return f"{CLASSIFIER_PROMPT}\n\nDOCUMENT TEXT:\n{document.text_excerpt(TEXT_MODE_LIMIT)}"

    def classify(self, document: DocumentInput) -> DocumentClassification:
        """Classify a document.

        Never raises for collaborator problems: a failed call or an unusable
        reply gives the default OTHER classification with confidence 0.3.

        Args:
            document: Document bytes and/or text

        Returns:
            Validated classification
        """
        prompt = self.build_prompt(document)
        try:
            response = self._provider.complete(prompt, document=document, max_tokens=512)
        except CollaboratorError as e:
            logger.error(f"Classifier call failed: {e}")
            return default_classification()

        outcome = parse_classification_response(response)
        if isinstance(outcome, Fallback):
            logger.warning(f"{outcome.reason}: {response[:200]!r}")
            return outcome.value

        logger.info(
            f"Classified document as {outcome.value.document_type.value} "
            f"(confidence {outcome.value.confidence:.2f})"
        )
        return outcome.value
