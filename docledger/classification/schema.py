"""Document taxonomy and classification result model."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DocumentType(str, Enum):
    """Fixed taxonomy of bookkeeping source documents."""

    INVOICE = "INVOICE"
    RECEIPT = "RECEIPT"
    BANK_STATEMENT = "BANK_STATEMENT"
    CREDIT_NOTE = "CREDIT_NOTE"
    SALARY_SLIP = "SALARY_SLIP"
    REMINDER = "REMINDER"
    CONTRACT = "CONTRACT"
    OTHER = "OTHER"


class ImageQuality(str, Enum):
    GOOD = "good"
    MEDIUM = "medium"
    POOR = "poor"


class DocumentClassification(BaseModel):
    """Classifier output, produced once per document.

    Attributes:
        document_type: Document type from the fixed taxonomy
        confidence: Classifier confidence (0-1)
        reasoning: Signals the collaborator reported seeing
        language: Document language (sv, en or other)
        has_handwriting: Whether handwriting was detected
        image_quality: Scan quality estimate
        multiple_documents: Whether the image holds several documents
        document_count: Number of documents in the image
        key_signals: Keywords the collaborator found
    """

    model_config = ConfigDict(frozen=True)

    document_type: DocumentType = DocumentType.OTHER
    confidence: float = Field(0.5, ge=0, le=1)
    reasoning: str = ""
    language: str = "sv"
    has_handwriting: bool = False
    image_quality: ImageQuality = ImageQuality.MEDIUM
    multiple_documents: bool = False
    document_count: int = Field(1, ge=1)
    key_signals: list[str] = Field(default_factory=list)
