"""Normalized extraction models.

Based on the bookkeeping fields found on Swedish invoices and receipts.
Amounts are floats in the document currency; dates are ISO strings.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_SUPPLIER = "unknown"
AUTO_NUMBER_PREFIX = "AUTO-"


class PaymentMethod(str, Enum):
    CARD = "card"
    CASH = "cash"
    SWISH = "swish"
    INVOICE = "invoice"
    OTHER = "other"


class ExtractedLineItem(BaseModel):
    """One row of the document. Order is presentation only."""

    model_config = ConfigDict(frozen=True)

    description: str
    quantity: float | None = None
    unit_price: float | None = None
    net_amount: float = 0.0
    vat_rate: float | None = None
    vat_amount: float | None = None


class ExtractedData(BaseModel):
    """Structured data extracted from one document.

    Invariants: currency is a 3-letter ISO code and total_amount is never negative.
    """

    model_config = ConfigDict(frozen=True)

    # Supplier information
    supplier: str = Field(UNKNOWN_SUPPLIER, description="Supplier/vendor name")
    supplier_org_number: str | None = None
    supplier_country: str | None = None
    supplier_vat_id: str | None = None

    # Document identity
    document_number: str = Field(..., description="Document number or AUTO-<timestamp>")
    document_date: str = Field(..., description="Document date (YYYY-MM-DD)")
    currency: str = Field(..., pattern=r"^[A-Z]{3}$", description="Currency code (ISO 4217)")

    # Amounts
    total_amount: float = Field(0.0, ge=0)
    net_amount: float | None = None
    vat_amount: float | None = None
    vat_rate: float | None = None

    # Payment metadata
    due_date: str | None = None
    payment_reference: str | None = None
    bankgiro: str | None = None
    plusgiro: str | None = None
    payment_method: PaymentMethod | None = None
    card_last_four: str | None = None

    line_items: list[ExtractedLineItem] = Field(default_factory=list)

    # Metadata
    raw_text_summary: str = ""
    extraction_confidence: float = Field(0.7, ge=0, le=1)
    multiple_documents_detected: bool = False

    @field_validator("total_amount", mode="before")
    @classmethod
    def _non_negative_total(cls, value: float) -> float:
        # Credit notes are often reported with a minus sign.
        return abs(value) if isinstance(value, int | float) else value

    @property
    def has_known_supplier(self) -> bool:
        return bool(self.supplier) and self.supplier != UNKNOWN_SUPPLIER

    @property
    def has_real_document_number(self) -> bool:
        return bool(self.document_number) and not self.document_number.startswith(
            AUTO_NUMBER_PREFIX
        )
