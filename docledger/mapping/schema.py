"""Ledger mapping models: account suggestions, voucher lines and the mapping result."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from docledger.classification.schema import DocumentType


class VoucherType(str, Enum):
    SUPPLIER_INVOICE = "SUPPLIER_INVOICE"
    RECEIPT = "RECEIPT"
    BANK = "BANK"
    SALARY = "SALARY"
    JOURNAL = "JOURNAL"
    OTHER = "OTHER"


class AccountSuggestion(BaseModel):
    """Suggested ledger account with the confidence tier of the rule that produced it."""

    model_config = ConfigDict(frozen=True)

    account: str = Field(..., pattern=r"^\d{4}$", description="4-digit BAS account")
    account_name: str
    confidence: float = Field(..., ge=0, le=1)
    reasoning: str = ""


class VoucherLine(BaseModel):
    """One debit or credit posting. Exactly one side is non-zero."""

    model_config = ConfigDict(frozen=True)

    account: str = Field(..., pattern=r"^\d{4}$")
    account_name: str
    debit: float = Field(0.0, ge=0)
    credit: float = Field(0.0, ge=0)
    description: str = ""
    cost_center: str | None = None

    @model_validator(mode="after")
    def _one_side(self) -> "VoucherLine":
        if (self.debit == 0) == (self.credit == 0):
            raise ValueError("Exactly one of debit/credit must be non-zero")
        return self


class LineItemMapping(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    amount: float
    suggested_account: AccountSuggestion
    alternative_accounts: list[AccountSuggestion] = Field(default_factory=list)
    suggested_cost_center: str | None = None


class SupplierInvoice(BaseModel):
    """Accounts-payable record for supplier invoices and credit notes."""

    model_config = ConfigDict(frozen=True)

    supplier_name: str
    supplier_org_number: str | None = None
    invoice_number: str
    invoice_date: str
    due_date: str
    total_amount: float
    payment_reference: str | None = None


class LedgerMapping(BaseModel):
    """Voucher proposal for one document, ready for review or export."""

    model_config = ConfigDict(frozen=True)

    document_type: DocumentType
    voucher_type: VoucherType
    voucher_date: str
    voucher_text: str
    voucher_lines: list[VoucherLine] = Field(default_factory=list)
    supplier_invoice: SupplierInvoice | None = None
    line_item_mappings: list[LineItemMapping] = Field(default_factory=list)
    suggested_cost_center: str | None = None
    overall_confidence: float = Field(..., ge=0, le=1)
    warnings: list[str] = Field(default_factory=list)
    requires_review: bool = False

    @property
    def total_debit(self) -> float:
        return round(sum(line.debit for line in self.voucher_lines), 2)

    @property
    def total_credit(self) -> float:
        return round(sum(line.credit for line in self.voucher_lines), 2)
