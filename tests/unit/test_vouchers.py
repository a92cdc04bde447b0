"""Unit tests for voucher construction, balance check and confidence."""

import pytest
from pydantic import ValidationError

from docledger.classification.schema import DocumentType
from docledger.extraction.schema import ExtractedData, PaymentMethod
from docledger.mapping.confidence import data_quality_score, overall_confidence
from docledger.mapping.reference import ReferenceData
from docledger.mapping.schema import AccountSuggestion, LineItemMapping, VoucherLine, VoucherType
from docledger.mapping.vouchers import (
    Side,
    build_voucher_lines,
    check_balance,
    posting_line,
    voucher_type_for,
)


def _extracted(**overrides: object) -> ExtractedData:
    fields: dict[str, object] = {
        "supplier": "Acme AB",
        "document_number": "1001",
        "document_date": "2024-03-23",
        "currency": "SEK",
        "total_amount": 125.0,
        "vat_amount": 25.0,
        "extraction_confidence": 0.9,
    }
    fields.update(overrides)
    return ExtractedData(**fields)  # type: ignore[arg-type]


def _mapping(amount: float, account: str = "6550", confidence: float = 0.8) -> LineItemMapping:
    return LineItemMapping(
        description="Konsulttimmar",
        amount=amount,
        suggested_account=AccountSuggestion(
            account=account, account_name="Konsultarvoden", confidence=confidence
        ),
    )


class TestVoucherType:
    """Test document type to voucher type mapping."""

    @pytest.mark.parametrize(
        ("document_type", "voucher_type"),
        [
            (DocumentType.INVOICE, VoucherType.SUPPLIER_INVOICE),
            (DocumentType.CREDIT_NOTE, VoucherType.SUPPLIER_INVOICE),
            (DocumentType.RECEIPT, VoucherType.RECEIPT),
            (DocumentType.BANK_STATEMENT, VoucherType.BANK),
            (DocumentType.SALARY_SLIP, VoucherType.SALARY),
            (DocumentType.REMINDER, VoucherType.JOURNAL),
            (DocumentType.CONTRACT, VoucherType.JOURNAL),
            (DocumentType.OTHER, VoucherType.JOURNAL),
        ],
    )
    def test_mapping(self, document_type: DocumentType, voucher_type: VoucherType) -> None:
        """Every document type has exactly one voucher type."""
        assert voucher_type_for(document_type) == voucher_type


class TestPostingLine:
    """Test single posting lines."""

    def test_debit(self) -> None:
        """Positive amounts stay on the requested side, rounded to öre."""
        line = posting_line("6550", "Konsultarvoden", 100.004, Side.DEBIT, "Timmar", "ADM")

        assert line is not None
        assert line.debit == 100.0
        assert line.credit == 0.0
        assert line.cost_center == "ADM"

    def test_negative_amount_flips_side(self) -> None:
        """Discount rows post on the opposite side."""
        line = posting_line("4010", "Inköp", -10.0, Side.DEBIT, "RABATT")

        assert line is not None
        assert line.debit == 0.0
        assert line.credit == 10.0

    def test_zero_amount_gives_no_line(self) -> None:
        """Zero amounts produce no line."""
        assert posting_line("6550", "Konsultarvoden", 0.001, Side.DEBIT, "") is None

    def test_line_needs_exactly_one_side(self) -> None:
        """A voucher line cannot carry both or neither side."""
        with pytest.raises(ValidationError):
            VoucherLine(account="6550", account_name="x", debit=1.0, credit=1.0)
        with pytest.raises(ValidationError):
            VoucherLine(account="6550", account_name="x")


class TestBuildVoucherLines:
    """Test full voucher construction."""

    def test_supplier_invoice(self, reference: ReferenceData) -> None:
        """Invoices debit cost and VAT and credit accounts payable."""
        lines, warnings = build_voucher_lines(
            DocumentType.INVOICE, _extracted(), [_mapping(100.0)], reference
        )

        assert [(line.account, line.debit, line.credit) for line in lines] == [
            ("6550", 100.0, 0.0),
            ("2640", 25.0, 0.0),
            ("2440", 0.0, 125.0),
        ]
        assert lines[1].account_name == "Ingående moms"
        assert lines[2].description == "Acme AB - 1001"
        assert warnings == []
        assert check_balance(lines) is None

    def test_card_receipt(self, reference: ReferenceData) -> None:
        """Card receipts credit the bank account."""
        lines, _ = build_voucher_lines(
            DocumentType.RECEIPT,
            _extracted(payment_method=PaymentMethod.CARD),
            [_mapping(100.0)],
            reference,
        )

        assert lines[-1].account == "1930"
        assert lines[-1].description == "Betalning"
        assert lines[-1].credit == 125.0

    @pytest.mark.parametrize("payment_method", [PaymentMethod.CASH, PaymentMethod.SWISH, None])
    def test_other_receipts_use_cash(
        self, reference: ReferenceData, payment_method: PaymentMethod | None
    ) -> None:
        """Receipts not paid by card credit the cash account."""
        lines, _ = build_voucher_lines(
            DocumentType.RECEIPT,
            _extracted(payment_method=payment_method),
            [_mapping(100.0)],
            reference,
        )

        assert lines[-1].account == "1910"
        assert lines[-1].account_name == "Kassa"

    def test_no_vat_line_without_vat(self, reference: ReferenceData) -> None:
        """The VAT line is only added for positive VAT."""
        lines, _ = build_voucher_lines(
            DocumentType.INVOICE,
            _extracted(vat_amount=None, total_amount=100.0),
            [_mapping(100.0)],
            reference,
        )

        assert "2640" not in [line.account for line in lines]

    def test_other_types_warn(self, reference: ReferenceData) -> None:
        """Types without a balancing rule get a warning."""
        lines, warnings = build_voucher_lines(
            DocumentType.CONTRACT, _extracted(), [_mapping(100.0)], reference
        )

        assert [line.account for line in lines] == ["6550", "2640"]
        assert warnings == ["No balancing line for CONTRACT; voucher balance is not guaranteed"]


class TestBalanceCheck:
    """Test the double-entry check."""

    def test_within_tolerance(self) -> None:
        """Differences up to one öre are accepted."""
        lines = [
            VoucherLine(account="6550", account_name="x", debit=100.01),
            VoucherLine(account="2440", account_name="y", credit=100.0),
        ]
        assert check_balance(lines) is None

    def test_unbalanced(self) -> None:
        """Larger differences give a warning with both sums."""
        lines = [
            VoucherLine(account="6550", account_name="x", debit=100.0),
            VoucherLine(account="2440", account_name="y", credit=90.0),
        ]
        assert check_balance(lines) == "Voucher does not balance: debit 100.00, credit 90.00"


class TestConfidence:
    """Test the overall confidence formula."""

    def test_data_quality_score(self) -> None:
        """Each strong signal adds a fixed increment."""
        assert data_quality_score(_extracted()) == pytest.approx(0.95)
        weak = _extracted(
            supplier="unknown", total_amount=0, vat_amount=None, document_number="AUTO-1"
        )
        assert data_quality_score(weak) == pytest.approx(0.55)

    def test_blend(self) -> None:
        """Extraction and mean mapping confidence are averaged."""
        confidence = overall_confidence(
            _extracted(extraction_confidence=0.5),
            [_mapping(50, confidence=0.9), _mapping(50, confidence=0.7)],
        )

        assert confidence == pytest.approx(0.88, abs=0.01)

    def test_floor_with_known_data(self) -> None:
        """Known supplier and total keep the confidence at or above 0.55."""
        extracted = _extracted(
            extraction_confidence=0.0, vat_amount=None, document_number="AUTO-1"
        )

        assert overall_confidence(extracted, [_mapping(100, confidence=0.0)]) == 0.55

    def test_floor_without_known_data(self) -> None:
        """Otherwise the floor is 0.4."""
        extracted = _extracted(
            supplier="unknown",
            total_amount=0,
            vat_amount=None,
            document_number="AUTO-1",
            extraction_confidence=0.0,
        )

        assert overall_confidence(extracted, [_mapping(100, confidence=0.0)]) == 0.4

    def test_cap(self) -> None:
        """Confidence never exceeds 0.99."""
        extracted = _extracted(extraction_confidence=1.0)

        assert overall_confidence(extracted, [_mapping(100, confidence=1.0)]) == 0.99

    def test_no_mappings_use_default(self) -> None:
        """Without mappings the mapping part counts as 0.7."""
        confidence = overall_confidence(_extracted(extraction_confidence=0.9), [])

        assert confidence == pytest.approx(0.82, abs=0.01)
