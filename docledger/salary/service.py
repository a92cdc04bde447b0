"""Salary slip extractor.

Salary slips do not fit the supplier-document rubric: they carry an
employee, a pay period, earnings, deductions, withheld tax and employer
contributions. This extractor asks the collaborator for that structure
and normalizes the reply the same way the document extractor does. An
unusable reply or a failed call yields an empty specification with
confidence 0 instead of an error.
"""

import logging
import re
from datetime import date
from typing import Any

from docledger.llm.base import CollaboratorError, CompletionProvider
from docledger.salary.schema import (
    UNKNOWN_EMPLOYEE,
    EmployerContributions,
    SalaryDeduction,
    SalaryEarning,
    SalarySpecification,
    VacationBalance,
)
from docledger.shared.config import Settings, get_settings
from docledger.shared.document import DocumentInput
from docledger.shared.parsing import (
    SWEDISH_MONTHS,
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

SALARY_TEXT_LIMIT = 2000
DEFAULT_SALARY_CONFIDENCE = 0.7
RECONCILIATION_TOLERANCE = 100.0

SALARY_PROMPT = """You are an expert at reading Swedish salary slips (lönespecifikationer).

EXTRACT:
1. EMPLOYEE: name, employee number ("Anst.nr"), personal identity number ("Personnr").
2. EMPLOYER: company name at the top of the slip.
3. PERIOD: the salary period ("Löneperiod") as YYYY-MM, and the pay date ("Utbetalningsdag").
4. EARNINGS: every earning row ("Månadslön", "Timlön", "Övertid", "OB-tillägg",
   "Semesterlön", "Bilersättning") with amount, and hours and rate when shown.
5. DEDUCTIONS: every deduction EXCEPT tax ("Fackavgift", "Pension", "Nettolöneavdrag",
   "Förmånsbil") with amount.
6. TAX: preliminary income tax ("Preliminärskatt", "Skatteavdrag") and the tax table.
7. TOTALS: gross salary ("Bruttolön") and net pay ("Nettolön", "Att utbetala").
8. EMPLOYER CONTRIBUTIONS: "Arbetsgivaravgifter" and employer pension, when printed.
9. VACATION: remaining, used and earned days ("Semesterdagar").

AMOUNTS are numbers: "32 500,00" -> 32500.00. Use 0 for amounts you cannot find.
{ocr_section}
Answer ONLY with JSON:
{{
  "employeeName": "name",
  "employeeId": "employee number or null",
  "personalNumber": "YYMMDD-XXXX or null",
  "employerName": "company name or null",
  "period": "YYYY-MM",
  "payDate": "YYYY-MM-DD",
  "currency": "SEK",
  "grossSalary": 32500.00,
  "netSalary": 24100.00,
  "earnings": [
    {{"type": "Månadslön", "description": "Månadslön mars", "amount": 32500.00,
      "hours": null, "rate": null}}
  ],
  "deductions": [
    {{"type": "Fackavgift", "description": "Unionen", "amount": 250.00}}
  ],
  "incomeTax": 8150.00,
  "taxTable": "33",
  "vacationDaysRemaining": 18,
  "vacationDaysUsed": 7,
  "vacationDaysEarned": 25,
  "employerSocialFees": 10211.50,
  "employerPensionFees": 1462.50,
  "confidence": 0.85,
  "warnings": []
}}"""

_PERSONAL_NUMBER = re.compile(r"(\d{6}-?)(\d{4})")
_NUMERIC_PERIOD = re.compile(r"^(\d{4})\s*[-/.]\s*(\d{1,2})\b")
_TEXT_PERIOD = re.compile(r"\b(" + "|".join(SWEDISH_MONTHS) + r")\.?\s+(\d{4})\b")


def build_salary_prompt(ocr_text: str = "") -> str:
    ocr_section = f"\nSUPPLEMENTARY OCR TEXT:\n{ocr_text}\n" if ocr_text else ""
    return SALARY_PROMPT.format(ocr_section=ocr_section)


def mask_personal_number(value: Any) -> str | None:
    """Hide the last four digits of a Swedish personal identity number."""
    text = _text(value)
    if text is None:
        return None
    return _PERSONAL_NUMBER.sub(r"\1****", text)


def normalize_period(value: Any, today: date | None = None) -> str:
    """Normalize a salary period to YYYY-MM; the current month when unreadable.

    Accepts "2024-03", "2024/3", full dates and month names ("mars 2024").
    """
    fallback = (today or date.today()).strftime("%Y-%m")
    text = _text(value)
    if text is None:
        return fallback

    match = _NUMERIC_PERIOD.match(text)
    if match and 1 <= int(match.group(2)) <= 12:
        return f"{match.group(1)}-{int(match.group(2)):02d}"

    match = _TEXT_PERIOD.search(text.lower())
    if match:
        return f"{match.group(2)}-{SWEDISH_MONTHS[match.group(1)]:02d}"

    logger.debug(f"Unparseable salary period {text!r}, using {fallback}")
    return fallback


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "n/a"}:
        return None
    return text


def _rows(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    rows = data.get(key)
    if not isinstance(rows, list):
        return []
    return [row for row in rows if isinstance(row, dict)]


def _earning_from_dict(row: dict[str, Any]) -> SalaryEarning:
    return SalaryEarning(
        type=_text(row.get("type")) or "Lön",
        description=_text(row.get("description")) or "",
        amount=parse_number(row.get("amount")),
        hours=parse_optional_number(row.get("hours")),
        rate=parse_optional_number(row.get("rate")),
    )


def _deduction_from_dict(row: dict[str, Any]) -> SalaryDeduction:
    return SalaryDeduction(
        type=_text(row.get("type")) or "Avdrag",
        description=_text(row.get("description")) or "",
        amount=abs(parse_number(row.get("amount"))),
    )


def validation_warnings(slip: SalarySpecification) -> list[str]:
    """Consistency problems between the slip's totals."""
    warnings = []
    if slip.gross_salary == 0:
        warnings.append("Gross salary missing")
    if slip.net_salary == 0:
        warnings.append("Net salary missing")
    if slip.gross_salary and slip.net_salary:
        withheld = slip.income_tax + sum(d.amount for d in slip.deductions)
        difference = slip.gross_salary - withheld - slip.net_salary
        if abs(difference) > RECONCILIATION_TOLERANCE:
            warnings.append(
                f"Gross salary minus tax and deductions differs from net salary "
                f"by {difference:.2f}"
            )
    return warnings


def create_empty_salary_specification(
    base_currency: str = "SEK", today: date | None = None
) -> SalarySpecification:
    """Specification used when the collaborator reply is unusable."""
    return SalarySpecification(
        employee_name=UNKNOWN_EMPLOYEE,
        period=normalize_period(None, today=today),
        pay_date=parse_date(None, today=today),
        currency=normalize_currency(None, None, base_currency),
        confidence=0.0,
        warnings=["could not extract salary specification"],
    )


def salary_from_dict(
    data: dict[str, Any], base_currency: str = "SEK", today: date | None = None
) -> SalarySpecification:
    """Normalize the collaborator's (partial) JSON into a SalarySpecification.

    Args:
        data: Parsed JSON object from the collaborator
        base_currency: Currency used when none is reported
        today: Reference date for a missing period or pay date

    Returns:
        Validated SalarySpecification, with consistency warnings appended
    """
    earnings = [_earning_from_dict(row) for row in _rows(data, "earnings")]
    deductions = [_deduction_from_dict(row) for row in _rows(data, "deductions")]

    gross = abs(parse_number(data.get("grossSalary")))
    if gross == 0 and earnings:
        gross = round(sum(e.amount for e in earnings), 2)
        logger.warning(
            f"Gross salary missing; reconciled {gross:.2f} from {len(earnings)} earnings"
        )

    reported = data.get("warnings")
    pay_date = _text(data.get("payDate"))

    slip = SalarySpecification(
        employee_name=_text(data.get("employeeName")) or UNKNOWN_EMPLOYEE,
        employee_id=_text(data.get("employeeId")),
        personal_number=mask_personal_number(data.get("personalNumber")),
        employer_name=_text(data.get("employerName")),
        period=normalize_period(data.get("period"), today=today),
        pay_date=parse_date(pay_date, today=today),
        currency=normalize_currency(data.get("currency"), None, base_currency),
        gross_salary=gross,
        net_salary=abs(parse_number(data.get("netSalary"))),
        income_tax=abs(parse_number(data.get("incomeTax"))),
        tax_table=_text(data.get("taxTable")),
        earnings=earnings,
        deductions=deductions,
        vacation=VacationBalance(
            days_remaining=parse_optional_number(data.get("vacationDaysRemaining")),
            days_used=parse_optional_number(data.get("vacationDaysUsed")),
            days_earned=parse_optional_number(data.get("vacationDaysEarned")),
        ),
        employer_contributions=EmployerContributions(
            social_fees=abs(parse_number(data.get("employerSocialFees"))),
            pension=abs(parse_number(data.get("employerPensionFees"))),
        ),
        confidence=clamp(
            parse_number(data.get("confidence"))
            if data.get("confidence") is not None
            else DEFAULT_SALARY_CONFIDENCE
        ),
        warnings=[str(w) for w in reported] if isinstance(reported, list) else [],
    )
    return slip.model_copy(update={"warnings": slip.warnings + validation_warnings(slip)})


def parse_salary_response(
    text: str, base_currency: str = "SEK", today: date | None = None
) -> ParseOutcome[SalarySpecification]:
    """Parse the collaborator reply into a salary specification.

    Returns:
        Parsed specification, or Fallback carrying the empty specification
    """
    data = extract_json_object(text)
    if data is None:
        return Fallback(
            create_empty_salary_specification(base_currency, today=today),
            reason="no JSON object in salary response",
        )
    return Parsed(salary_from_dict(data, base_currency, today=today))


class SalaryExtractor:
    """Extracts the salary specification from a salary slip."""

    def __init__(self, provider: CompletionProvider, settings: Settings | None = None) -> None:
        self._provider = provider
        self._settings = settings or get_settings()

    def extract(self, document: DocumentInput) -> SalarySpecification:
        """Extract the salary specification from a document.

        Args:
            document: Salary slip bytes and/or text

        Returns:
            SalarySpecification (empty specification on collaborator failure)
        """
        base_currency = self._settings.base_currency
        prompt = build_salary_prompt(document.text_excerpt(SALARY_TEXT_LIMIT))

        try:
            response = self._provider.complete(prompt, document=document, max_tokens=2048)
        except CollaboratorError as e:
            logger.error(f"Salary extraction call failed: {e}")
            return create_empty_salary_specification(base_currency)

        outcome = parse_salary_response(response, base_currency)
        if isinstance(outcome, Fallback):
            logger.warning(f"{outcome.reason}: {response[:200]!r}")
            return outcome.value

        slip = outcome.value
        logger.info(
            f"Extracted salary slip {slip.period}: gross={slip.gross_salary:.2f}, "
            f"net={slip.net_salary:.2f} {slip.currency}, {len(slip.warnings)} warnings"
        )
        return slip
