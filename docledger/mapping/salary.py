"""Salary slip postings.

Earnings are debited on their wage accounts, withheld tax and net pay are
credited, and whatever else was withheld is credited on its deduction
account with the unexplained remainder on the other-deductions account.
Employer contributions get their own expense/liability pair.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

from docledger.mapping.matching import contains_term, normalize_text
from docledger.mapping.reference import DEFAULT_REFERENCE_DATA_DIR, ReferenceData
from docledger.mapping.schema import VoucherLine
from docledger.mapping.vouchers import BALANCE_TOLERANCE, Side, posting_line
from docledger.salary.schema import SalarySpecification

logger = logging.getLogger(__name__)

SALARY_TABLE = "salary.yml"


@dataclass(frozen=True, slots=True)
class SalaryRule:
    account: str
    terms: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SalaryAccounts:
    """Account tables for salary postings."""

    earnings: tuple[SalaryRule, ...] = ()
    deductions: tuple[SalaryRule, ...] = ()
    gross_salary: str = "7010"
    income_tax: str = "2710"
    net_salary: str = "1930"
    other_deductions: str = "2890"
    employer_contributions: str = "7510"
    employer_contributions_liability: str = "2730"

    @classmethod
    def load(cls, path: Path) -> "SalaryAccounts":
        if not path.exists():
            logger.warning(f"No salary table at {path}, using the fixed salary accounts")
            return cls()
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a YAML mapping at {path}, got {type(data).__name__}.")
        posting = data.get("posting_accounts") or {}
        return cls(
            earnings=_rules(data.get("earnings")),
            deductions=_rules(data.get("deductions")),
            gross_salary=str(posting.get("gross_salary", "7010")),
            income_tax=str(posting.get("income_tax", "2710")),
            net_salary=str(posting.get("net_salary", "1930")),
            other_deductions=str(posting.get("other_deductions", "2890")),
            employer_contributions=str(posting.get("employer_contributions", "7510")),
            employer_contributions_liability=str(
                posting.get("employer_contributions_liability", "2730")
            ),
        )

    def earning_account(self, row_type: str, description: str = "") -> str | None:
        return _match(self.earnings, row_type, description)

    def deduction_account(self, row_type: str, description: str = "") -> str | None:
        return _match(self.deductions, row_type, description)


def _rules(entries: object) -> tuple[SalaryRule, ...]:
    if not isinstance(entries, list):
        return ()
    return tuple(
        SalaryRule(
            account=str(entry["account"]),
            terms=tuple(normalize_text(str(t)) for t in entry.get("terms") or []),
        )
        for entry in entries
    )


def _match(rules: Sequence[SalaryRule], row_type: str, description: str) -> str | None:
    haystack = normalize_text(f"{row_type} {description}")
    if not haystack:
        return None
    for rule in rules:
        if any(contains_term(haystack, term) for term in rule.terms):
            return rule.account
    return None


@lru_cache(maxsize=8)
def load_salary_accounts(data_dir: Path | None = None) -> SalaryAccounts:
    return SalaryAccounts.load((data_dir or DEFAULT_REFERENCE_DATA_DIR) / SALARY_TABLE)


def _earnings_match_gross(slip: SalarySpecification) -> bool:
    total = sum(e.amount for e in slip.earnings)
    return bool(slip.earnings) and abs(total - slip.gross_salary) < BALANCE_TOLERANCE


def build_salary_voucher_lines(
    slip: SalarySpecification, accounts: SalaryAccounts, reference: ReferenceData
) -> list[VoucherLine]:
    """Voucher lines for one salary slip.

    Earnings are posted row by row only when they add up to the gross
    salary; otherwise the gross salary goes to the wage account as one line.

    Args:
        slip: Extracted salary specification
        accounts: Salary account tables
        reference: Chart of accounts, for account names

    Returns:
        Voucher lines in posting order (zero amounts skipped)
    """
    text = f"Lön {slip.period} - {slip.employee_name}"

    def line(
        account: str, amount: float, side: Side, description: str = text
    ) -> VoucherLine | None:
        return posting_line(account, reference.account_name(account), amount, side, description)

    lines: list[VoucherLine | None] = []
    if _earnings_match_gross(slip):
        for earning in slip.earnings:
            account = (
                accounts.earning_account(earning.type, earning.description) or accounts.gross_salary
            )
            lines.append(line(account, earning.amount, Side.DEBIT, earning.description or text))
    else:
        lines.append(line(accounts.gross_salary, slip.gross_salary, Side.DEBIT))

    lines.append(line(accounts.income_tax, slip.income_tax, Side.CREDIT))
    lines.append(line(accounts.net_salary, slip.net_salary, Side.CREDIT))

    remainder = slip.other_deductions
    for deduction in slip.deductions:
        account = accounts.deduction_account(deduction.type, deduction.description)
        if account is None or account == accounts.other_deductions:
            continue
        lines.append(
            line(account, deduction.amount, Side.CREDIT, deduction.description or deduction.type)
        )
        remainder -= deduction.amount
    if abs(remainder) >= BALANCE_TOLERANCE:
        lines.append(line(accounts.other_deductions, remainder, Side.CREDIT))

    contributions = slip.employer_contributions.total
    if contributions > 0:
        description = f"Arbetsgivaravgifter {slip.period}"
        lines.append(line(accounts.employer_contributions, contributions, Side.DEBIT, description))
        lines.append(
            line(accounts.employer_contributions_liability, contributions, Side.CREDIT, description)
        )

    return [voucher_line for voucher_line in lines if voucher_line is not None]
