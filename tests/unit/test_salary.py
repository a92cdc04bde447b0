"""Unit tests for salary slip extraction and salary vouchers."""

import json
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any

import pytest

from docledger.classification.schema import DocumentType
from docledger.llm.base import CompletionProvider
from docledger.mapping.reference import ReferenceData
from docledger.mapping.salary import (
    SalaryAccounts,
    build_salary_voucher_lines,
    load_salary_accounts,
)
from docledger.mapping.schema import VoucherType
from docledger.mapping.service import LedgerMapper
from docledger.mapping.vouchers import check_balance
from docledger.salary.schema import (
    EmployerContributions,
    SalaryDeduction,
    SalaryEarning,
    SalarySpecification,
)
from docledger.salary.service import (
    SalaryExtractor,
    create_empty_salary_specification,
    mask_personal_number,
    normalize_period,
    parse_salary_response,
    salary_from_dict,
)
from docledger.shared.config import Settings
from docledger.shared.document import DocumentInput
from docledger.shared.parsing import Fallback, Parsed

TODAY = date(2024, 6, 1)

SALARY_DATA = {
    "employeeName": "Anna Svensson",
    "employeeId": "1042",
    "personalNumber": "850101-1234",
    "employerName": "Acme Konsult AB",
    "period": "mars 2024",
    "payDate": "25.03.2024",
    "currency": "SEK",
    "grossSalary": "32 500,00",
    "netSalary": "23 100,00",
    "earnings": [
        {"type": "Månadslön", "description": "Månadslön mars", "amount": "30 000,00"},
        {"type": "Övertid", "amount": 2000, "hours": 8, "rate": 250},
        {"type": "Bilersättning", "description": "Bilersättning 200 km", "amount": 500},
    ],
    "deductions": [
        {"type": "Fackavgift", "description": "Unionen", "amount": 250},
        {"type": "Pension", "description": "Pension löneväxling", "amount": -1000},
    ],
    "incomeTax": "8 150,00",
    "taxTable": 33,
    "vacationDaysRemaining": 18,
    "vacationDaysUsed": 7,
    "vacationDaysEarned": 25,
    "employerSocialFees": 10211.50,
    "employerPensionFees": 1462.50,
    "confidence": 0.85,
}


@pytest.fixture
def salary_slip() -> SalarySpecification:
    """Normalized March salary slip."""
    return salary_from_dict(SALARY_DATA, today=TODAY)


@pytest.fixture
def salary_document() -> DocumentInput:
    """OCR text of a salary slip."""
    return DocumentInput.from_text(
        "ACME KONSULT AB\nLÖNESPECIFIKATION\nAnna Svensson  Anst.nr 1042\n"
        "Löneperiod 2024-03  Utbetalningsdag 2024-03-25\nMånadslön 30 000,00\n"
        "Övertid 8 h 2 000,00\nBilersättning 500,00\nBruttolön 32 500,00\n"
        "Preliminärskatt -8 150,00\nNettolön 23 100,00"
    )


def _slip(**overrides: object) -> SalarySpecification:
    fields: dict[str, object] = {
        "employee_name": "Anna Svensson",
        "period": "2024-03",
        "pay_date": "2024-03-25",
        "gross_salary": 30000.0,
        "income_tax": 7000.0,
        "net_salary": 23000.0,
        "confidence": 0.9,
    }
    fields.update(overrides)
    return SalarySpecification(**fields)  # type: ignore[arg-type]


class TestSalaryFromDict:
    """Test normalization of the collaborator's salary JSON."""

    def test_slip_normalized(self, salary_slip: SalarySpecification) -> None:
        """Amounts, dates, period and identity number are normalized."""
        assert salary_slip.employee_name == "Anna Svensson"
        assert salary_slip.employer_name == "Acme Konsult AB"
        assert salary_slip.personal_number == "850101-****"
        assert salary_slip.period == "2024-03"
        assert salary_slip.pay_date == "2024-03-25"
        assert salary_slip.gross_salary == 32500.0
        assert salary_slip.net_salary == 23100.0
        assert salary_slip.income_tax == 8150.0
        assert salary_slip.tax_table == "33"
        assert [e.amount for e in salary_slip.earnings] == [30000.0, 2000.0, 500.0]
        assert salary_slip.earnings[1].hours == 8.0
        assert [d.amount for d in salary_slip.deductions] == [250.0, 1000.0]
        assert salary_slip.vacation.days_remaining == 18.0
        assert salary_slip.employer_contributions.total == 11674.0
        assert salary_slip.confidence == pytest.approx(0.85)
        assert salary_slip.warnings == []

    def test_gross_reconciled_from_earnings(self) -> None:
        """A missing gross salary is rebuilt from the earnings."""
        payload = {
            "netSalary": 22000,
            "incomeTax": 8000,
            "earnings": [{"type": "Månadslön", "amount": 28000}, {"type": "OB", "amount": 2000}],
        }

        slip = salary_from_dict(payload, today=TODAY)

        assert slip.gross_salary == 30000.0
        assert slip.warnings == []

    def test_inconsistent_totals_warn(self) -> None:
        """Gross minus tax and deductions must match the net pay within 100."""
        payload = dict(SALARY_DATA, netSalary=20000)

        slip = salary_from_dict(payload, today=TODAY)

        assert slip.warnings == [
            "Gross salary minus tax and deductions differs from net salary by 3100.00"
        ]

    def test_small_difference_tolerated(self) -> None:
        """Rounding differences up to 100 are not reported."""
        slip = salary_from_dict(dict(SALARY_DATA, netSalary=23150), today=TODAY)

        assert slip.warnings == []

    def test_missing_fields_get_defaults(self) -> None:
        """Missing employee, period and totals get defaults and warnings."""
        slip = salary_from_dict({"warnings": ["blurry scan"]}, base_currency="EUR", today=TODAY)

        assert slip.employee_name == "unknown"
        assert slip.period == "2024-06"
        assert slip.pay_date == "2024-06-01"
        assert slip.currency == "EUR"
        assert slip.confidence == 0.7
        assert slip.warnings == ["blurry scan", "Gross salary missing", "Net salary missing"]


def test_mask_personal_number() -> None:
    """The last four digits are hidden."""
    assert mask_personal_number("19850101-1234") == "19850101-****"
    assert mask_personal_number("8501011234") == "850101****"
    assert mask_personal_number("null") is None
    assert mask_personal_number(None) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2024-03", "2024-03"),
        ("2024/3", "2024-03"),
        ("2024-03-25", "2024-03"),
        ("Mars 2024", "2024-03"),
        ("Löneperiod januari 2025", "2025-01"),
        ("2024-13", "2024-06"),
        (None, "2024-06"),
    ],
)
def test_normalize_period(value: str | None, expected: str) -> None:
    """Periods become YYYY-MM; unreadable ones fall back to the current month."""
    assert normalize_period(value, today=TODAY) == expected


def test_empty_specification() -> None:
    """The empty specification is valid and has zero confidence."""
    slip = create_empty_salary_specification("SEK", today=TODAY)

    assert slip.confidence == 0.0
    assert slip.gross_salary == 0.0
    assert slip.period == "2024-06"
    assert slip.warnings == ["could not extract salary specification"]


class TestParseSalaryResponse:
    """Test parsing of salary replies."""

    def test_json_reply(self) -> None:
        """A JSON reply wrapped in a code fence is parsed."""
        outcome = parse_salary_response(f"```json\n{json.dumps(SALARY_DATA)}\n```", today=TODAY)

        assert isinstance(outcome, Parsed)
        assert outcome.value.net_salary == 23100.0

    def test_malformed_reply(self) -> None:
        """A reply without JSON gives the empty specification."""
        outcome = parse_salary_response("No salary slip here", today=TODAY)

        assert isinstance(outcome, Fallback)
        assert outcome.value.confidence == 0.0


class TestSalaryExtractor:
    """Test the salary extractor against a fake collaborator."""

    def test_extract(
        self,
        make_provider: Callable[..., Any],
        salary_document: DocumentInput,
        settings: Settings,
    ) -> None:
        """Sends the salary prompt with the OCR text and normalizes the reply."""
        provider = make_provider([json.dumps(SALARY_DATA)])

        slip = SalaryExtractor(provider, settings).extract(salary_document)

        assert slip.gross_salary == 32500.0
        prompt, document, max_tokens = provider.calls[0]
        assert "lönespecifikationer" in prompt
        assert "SUPPLEMENTARY OCR TEXT" in prompt
        assert "Nettolön 23 100,00" in prompt
        assert document is salary_document
        assert max_tokens == 2048

    def test_collaborator_failure_gives_empty_specification(
        self, failing_provider: CompletionProvider, salary_document: DocumentInput
    ) -> None:
        """A failed call never raises."""
        settings = Settings(_env_file=None, base_currency="EUR")

        slip = SalaryExtractor(failing_provider, settings).extract(salary_document)

        assert slip.currency == "EUR"
        assert slip.confidence == 0.0


def test_as_extracted_data(salary_slip: SalarySpecification) -> None:
    """The summary uses the employer as supplier and the gross salary as total."""
    data = salary_slip.as_extracted_data()

    assert data.supplier == "Acme Konsult AB"
    assert data.document_number == "LÖN-2024-03"
    assert data.document_date == "2024-03-25"
    assert data.total_amount == 32500.0
    assert data.net_amount == 23100.0
    assert data.raw_text_summary == "Lön 2024-03 - Anna Svensson"
    assert [item.net_amount for item in data.line_items] == [30000.0, 2000.0, 500.0]


class TestSalaryAccounts:
    """Test the salary account table."""

    def test_packaged_table(self) -> None:
        """Rows are matched on type and description, specific terms first."""
        accounts = load_salary_accounts()

        assert accounts.earning_account("Bilersättning") == "7320"
        assert accounts.earning_account("Semesterlön") == "7082"
        assert accounts.earning_account("Månadslön", "mars") == "7010"
        assert accounts.earning_account("Provision") is None
        assert accounts.deduction_account("Pension", "ITP") == "7412"
        assert accounts.deduction_account("Förmånsbil") == "7385"
        assert accounts.deduction_account("Fackavgift", "Unionen") == "2890"

    def test_missing_table_uses_fixed_accounts(self, tmp_path: Path) -> None:
        """Without a salary table the fixed posting accounts are used."""
        accounts = SalaryAccounts.load(tmp_path / "salary.yml")

        assert accounts.gross_salary == "7010"
        assert accounts.employer_contributions_liability == "2730"
        assert accounts.earning_account("Månadslön") is None

    def test_custom_table(self, tmp_path: Path) -> None:
        """Posting accounts can be overridden."""
        path = tmp_path / "salary.yml"
        path.write_text(
            "earnings:\n  - {account: '7011', terms: [månadslön]}\n"
            "posting_accounts:\n  net_salary: '1940'\n",
            encoding="utf-8",
        )

        accounts = SalaryAccounts.load(path)

        assert accounts.earning_account("Månadslön") == "7011"
        assert accounts.net_salary == "1940"
        assert accounts.income_tax == "2710"


class TestSalaryVoucher:
    """Test salary voucher lines."""

    def test_full_slip(self, salary_slip: SalarySpecification, reference: ReferenceData) -> None:
        """Earnings, tax, net pay, deductions and employer contributions balance."""
        lines = build_salary_voucher_lines(salary_slip, load_salary_accounts(), reference)

        assert [(line.account, line.debit, line.credit) for line in lines] == [
            ("7010", 30000.0, 0.0),
            ("7010", 2000.0, 0.0),
            ("7320", 500.0, 0.0),
            ("2710", 0.0, 8150.0),
            ("1930", 0.0, 23100.0),
            ("7412", 0.0, 1000.0),
            ("2890", 0.0, 250.0),
            ("7510", 11674.0, 0.0),
            ("2730", 0.0, 11674.0),
        ]
        assert lines[0].account_name == "Löner till kollektivanställda"
        assert lines[3].description == "Lön 2024-03 - Anna Svensson"
        assert check_balance(lines) is None

    def test_earnings_not_matching_gross(self, reference: ReferenceData) -> None:
        """Earnings that do not add up to the gross salary give one gross line."""
        slip = _slip(earnings=[SalaryEarning(type="Månadslön", amount=25000.0)])

        lines = build_salary_voucher_lines(slip, load_salary_accounts(), reference)

        assert [(line.account, line.debit, line.credit) for line in lines] == [
            ("7010", 30000.0, 0.0),
            ("2710", 0.0, 7000.0),
            ("1930", 0.0, 23000.0),
        ]

    def test_unexplained_deductions_on_other_deductions(self, reference: ReferenceData) -> None:
        """Whatever was withheld besides tax goes to the other-deductions account."""
        slip = _slip(
            net_salary=22500.0, deductions=[SalaryDeduction(type="Fackavgift", amount=300)]
        )

        lines = build_salary_voucher_lines(slip, load_salary_accounts(), reference)

        assert lines[-1].account == "2890"
        assert lines[-1].credit == 500.0
        assert check_balance(lines) is None

    def test_net_above_gross_minus_tax(self, reference: ReferenceData) -> None:
        """A negative remainder is debited and the voucher still balances."""
        slip = _slip(net_salary=23500.0)

        lines = build_salary_voucher_lines(slip, load_salary_accounts(), reference)

        assert (lines[-1].account, lines[-1].debit) == ("2890", 500.0)
        assert check_balance(lines) is None

    def test_employer_contributions(self, reference: ReferenceData) -> None:
        """Employer contributions are an expense against their liability."""
        slip = _slip(employer_contributions=EmployerContributions(social_fees=9426.0))

        lines = build_salary_voucher_lines(slip, load_salary_accounts(), reference)

        assert [(line.account, line.debit, line.credit) for line in lines[-2:]] == [
            ("7510", 9426.0, 0.0),
            ("2730", 0.0, 9426.0),
        ]
        assert lines[-1].description == "Arbetsgivaravgifter 2024-03"


class TestMapSalary:
    """Test the mapper's salary voucher."""

    def test_balanced_salary_voucher(
        self, settings: Settings, salary_slip: SalarySpecification
    ) -> None:
        """A consistent slip maps to a balanced SALARY voucher without review."""
        mapping = LedgerMapper(settings=settings).map_salary(salary_slip)

        assert mapping.document_type == DocumentType.SALARY_SLIP
        assert mapping.voucher_type == VoucherType.SALARY
        assert mapping.voucher_date == "2024-03-25"
        assert mapping.voucher_text == "Lön 2024-03 - Anna Svensson"
        assert mapping.total_debit == mapping.total_credit == 44174.0
        assert mapping.overall_confidence == 0.85
        assert mapping.warnings == []
        assert mapping.requires_review is False
        assert mapping.supplier_invoice is None

        rows = [
            (m.suggested_account.account, m.suggested_account.confidence)
            for m in mapping.line_item_mappings
        ]
        assert rows == [("7010", 0.9), ("7010", 0.9), ("7320", 0.9)]

    def test_unknown_earning_uses_wage_account(self, settings: Settings) -> None:
        """Earnings outside the table go to the wage account at lower confidence."""
        slip = _slip(earnings=[SalaryEarning(type="Provision", amount=30000.0)])

        mapping = LedgerMapper(settings=settings).map_salary(slip)

        suggestion = mapping.line_item_mappings[0].suggested_account
        assert (suggestion.account, suggestion.confidence) == ("7010", 0.7)

    def test_inconsistent_slip_needs_review(self, settings: Settings) -> None:
        """Extraction warnings are carried over and set the review flag."""
        slip = salary_from_dict(dict(SALARY_DATA, netSalary=20000), today=TODAY)

        mapping = LedgerMapper(settings=settings).map_salary(slip)

        assert mapping.requires_review is True
        assert mapping.warnings[0].startswith("Gross salary minus tax")
        assert mapping.total_debit == mapping.total_credit

    def test_empty_specification_needs_review(self, settings: Settings) -> None:
        """The empty specification maps to an empty voucher flagged for review."""
        mapping = LedgerMapper(settings=settings).map_salary(create_empty_salary_specification())

        assert mapping.voucher_lines == []
        assert mapping.overall_confidence == 0.0
        assert mapping.requires_review is True
