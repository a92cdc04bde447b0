"""Voucher construction and the double-entry balance check."""

from collections.abc import Sequence
from enum import Enum
from types import MappingProxyType

from docledger.classification.schema import DocumentType
from docledger.extraction.schema import ExtractedData, PaymentMethod
from docledger.mapping.reference import ReferenceData
from docledger.mapping.schema import LineItemMapping, VoucherLine, VoucherType

BALANCE_TOLERANCE = 0.01

VOUCHER_TYPES = MappingProxyType(
    {
        DocumentType.INVOICE: VoucherType.SUPPLIER_INVOICE,
        DocumentType.CREDIT_NOTE: VoucherType.SUPPLIER_INVOICE,
        DocumentType.RECEIPT: VoucherType.RECEIPT,
        DocumentType.BANK_STATEMENT: VoucherType.BANK,
        DocumentType.SALARY_SLIP: VoucherType.SALARY,
    }
)


class Side(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


def voucher_type_for(document_type: DocumentType) -> VoucherType:
    return VOUCHER_TYPES.get(document_type, VoucherType.JOURNAL)


def posting_line(
    account: str,
    account_name: str,
    amount: float,
    side: Side,
    description: str,
    cost_center: str | None = None,
) -> VoucherLine | None:
    """Build one voucher line; negative amounts go to the opposite side, zero gives None."""
    amount = round(amount, 2)
    if amount == 0:
        return None
    if amount < 0:
        amount = -amount
        side = Side.CREDIT if side == Side.DEBIT else Side.DEBIT
    return VoucherLine(
        account=account,
        account_name=account_name,
        debit=amount if side == Side.DEBIT else 0.0,
        credit=amount if side == Side.CREDIT else 0.0,
        description=description,
        cost_center=cost_center,
    )


def build_voucher_lines(
    document_type: DocumentType,
    extracted: ExtractedData,
    mappings: Sequence[LineItemMapping],
    reference: ReferenceData,
) -> tuple[list[VoucherLine], list[str]]:
    """Build the voucher lines for a document.

    Supplier invoices and credit notes credit accounts payable for the total;
    receipts credit the card or cash account. Other types only get the cost
    and VAT lines, with a warning that the voucher may not balance.

    Returns:
        (voucher lines, warnings)
    """
    posting = reference.posting
    warnings: list[str] = []
    candidates: list[VoucherLine | None] = [
        posting_line(
            mapping.suggested_account.account,
            mapping.suggested_account.account_name,
            mapping.amount,
            Side.DEBIT,
            mapping.description,
            mapping.suggested_cost_center,
        )
        for mapping in mappings
    ]

    if extracted.vat_amount and extracted.vat_amount > 0:
        candidates.append(
            posting_line(
                posting.input_vat,
                reference.account_name(posting.input_vat, "Ingående moms"),
                extracted.vat_amount,
                Side.DEBIT,
                "Ingående moms",
            )
        )

    voucher_type = voucher_type_for(document_type)
    if voucher_type == VoucherType.SUPPLIER_INVOICE:
        candidates.append(
            posting_line(
                posting.accounts_payable,
                reference.account_name(posting.accounts_payable, "Leverantörsskulder"),
                extracted.total_amount,
                Side.CREDIT,
                f"{extracted.supplier} - {extracted.document_number}",
            )
        )
    elif voucher_type == VoucherType.RECEIPT:
        account = posting.card if extracted.payment_method == PaymentMethod.CARD else posting.cash
        candidates.append(
            posting_line(
                account,
                reference.account_name(account),
                extracted.total_amount,
                Side.CREDIT,
                "Betalning",
            )
        )
    else:
        warnings.append(
            f"No balancing line for {document_type.value}; voucher balance is not guaranteed"
        )

    return [line for line in candidates if line is not None], warnings


def check_balance(lines: Sequence[VoucherLine]) -> str | None:
    """Return a warning with both sums when debit and credit differ by more than 0.01."""
    total_debit = sum(line.debit for line in lines)
    total_credit = sum(line.credit for line in lines)
    if round(abs(total_debit - total_credit), 2) > BALANCE_TOLERANCE:
        return f"Voucher does not balance: debit {total_debit:.2f}, credit {total_credit:.2f}"
    return None
