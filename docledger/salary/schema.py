"""Salary slip models.

A salary slip is posted from its own structure (earnings, deductions,
tax and employer contributions) rather than from supplier lines.
"""

from pydantic import BaseModel, ConfigDict, Field

from docledger.extraction.schema import UNKNOWN_SUPPLIER, ExtractedData, ExtractedLineItem

UNKNOWN_EMPLOYEE = "unknown"


class SalaryEarning(BaseModel):
    """One earning row: monthly salary, overtime, vacation pay, mileage and so on."""

    model_config = ConfigDict(frozen=True)

    type: str
    description: str = ""
    amount: float = 0.0
    hours: float | None = None
    rate: float | None = None


class SalaryDeduction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    description: str = ""
    amount: float = 0.0


class VacationBalance(BaseModel):
    model_config = ConfigDict(frozen=True)

    days_remaining: float | None = None
    days_used: float | None = None
    days_earned: float | None = None


class EmployerContributions(BaseModel):
    model_config = ConfigDict(frozen=True)

    social_fees: float = Field(0.0, ge=0)
    pension: float = Field(0.0, ge=0)

    @property
    def total(self) -> float:
        return round(self.social_fees + self.pension, 2)


class SalarySpecification(BaseModel):
    """Structured data extracted from one salary slip.

    Invariants: gross_salary, net_salary and income_tax are never negative,
    period is YYYY-MM and personal_number is stored masked.
    """

    model_config = ConfigDict(frozen=True)

    employee_name: str = UNKNOWN_EMPLOYEE
    employee_id: str | None = None
    personal_number: str | None = None
    employer_name: str | None = None

    period: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    pay_date: str = Field(..., description="Pay date (YYYY-MM-DD)")
    currency: str = Field("SEK", pattern=r"^[A-Z]{3}$")

    gross_salary: float = Field(0.0, ge=0)
    net_salary: float = Field(0.0, ge=0)
    income_tax: float = Field(0.0, ge=0)
    tax_table: str | None = None

    earnings: list[SalaryEarning] = Field(default_factory=list)
    deductions: list[SalaryDeduction] = Field(default_factory=list)
    vacation: VacationBalance = Field(default_factory=VacationBalance)
    employer_contributions: EmployerContributions = Field(default_factory=EmployerContributions)

    confidence: float = Field(0.7, ge=0, le=1)
    warnings: list[str] = Field(default_factory=list)

    @property
    def other_deductions(self) -> float:
        """Everything withheld besides tax: gross minus tax minus net pay."""
        return round(self.gross_salary - self.income_tax - self.net_salary, 2)

    def as_extracted_data(self) -> ExtractedData:
        """Summary in the common extraction shape, for the pipeline result."""
        return ExtractedData(
            supplier=self.employer_name or UNKNOWN_SUPPLIER,
            document_number=f"LÖN-{self.period}",
            document_date=self.pay_date,
            currency=self.currency,
            total_amount=self.gross_salary,
            net_amount=self.net_salary,
            vat_amount=0.0,
            line_items=[
                ExtractedLineItem(description=e.description or e.type, net_amount=e.amount)
                for e in self.earnings
            ],
            raw_text_summary=f"Lön {self.period} - {self.employee_name}",
            extraction_confidence=self.confidence,
        )
