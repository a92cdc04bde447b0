"""Stage 3: ledger mapper.

Turns extracted data into a balanced voucher proposal: voucher type,
document cost center, per-line account suggestions with alternatives,
voucher lines, balance check, overall confidence and the review flag.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta

from docledger.classification.schema import DocumentType
from docledger.extraction.schema import ExtractedData, ExtractedLineItem
from docledger.llm.base import CompletionProvider
from docledger.mapping.accounts import AccountSuggester
from docledger.mapping.confidence import MAXIMUM_CONFIDENCE, overall_confidence
from docledger.mapping.cost_center import suggest_cost_center
from docledger.mapping.reference import ReferenceData, load_reference_data
from docledger.mapping.salary import (
    SalaryAccounts,
    build_salary_voucher_lines,
    load_salary_accounts,
)
from docledger.mapping.schema import (
    AccountSuggestion,
    LedgerMapping,
    LineItemMapping,
    SupplierInvoice,
)
from docledger.mapping.vouchers import build_voucher_lines, check_balance, voucher_type_for
from docledger.salary.schema import SalaryEarning, SalarySpecification
from docledger.shared.config import Settings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_TERM_DAYS = 30
FALLBACK_NET_SHARE = 0.8
FALLBACK_LINE_DESCRIPTION = "according to source document"
SALARY_TABLE_CONFIDENCE = 0.9
SALARY_DEFAULT_CONFIDENCE = 0.7


def default_due_date(invoice_date: str, days: int = DEFAULT_PAYMENT_TERM_DAYS) -> str:
    """Invoice date plus the default payment term."""
    try:
        start = date.fromisoformat(invoice_date)
    except ValueError:
        start = date.today()
    return (start + timedelta(days=days)).isoformat()


class LedgerMapper:
    """Maps extracted document data onto BAS accounts and voucher lines."""

    def __init__(
        self,
        provider: CompletionProvider | None = None,
        settings: Settings | None = None,
        reference: ReferenceData | None = None,
        salary_accounts: SalaryAccounts | None = None,
    ) -> None:
        """Initialize mapper.

        Args:
            provider: Collaborator for the account fallback (None disables it)
            settings: Application settings
            reference: Reference tables (defaults to the configured YAML tables)
            salary_accounts: Salary posting tables (defaults to the configured YAML table)
        """
        self._settings = settings or get_settings()
        self._reference = reference or load_reference_data(self._settings.reference_data_dir)
        self._accounts = AccountSuggester(self._reference, provider)
        self._salary_accounts = salary_accounts or load_salary_accounts(
            self._settings.reference_data_dir
        )

    @property
    def reference(self) -> ReferenceData:
        return self._reference

    def map(self, document_type: DocumentType, extracted: ExtractedData) -> LedgerMapping:
        """Build the voucher proposal for one document.

        Data-quality problems never raise: they are reported as warnings and
        set requires_review.

        Args:
            document_type: Classified document type
            extracted: Normalized extraction

        Returns:
            LedgerMapping
        """
        threshold = self._settings.review_confidence_threshold
        descriptions = [item.description for item in extracted.line_items]
        cost_center = suggest_cost_center(
            self._reference,
            document_type,
            extracted.supplier,
            descriptions,
            extracted.raw_text_summary,
        )

        mappings = self._map_line_items(extracted, document_type, cost_center)
        if not mappings and extracted.total_amount > 0:
            mappings = [self._document_level_mapping(extracted, cost_center)]

        voucher_lines, warnings = build_voucher_lines(
            document_type, extracted, mappings, self._reference
        )
        balance_warning = check_balance(voucher_lines)
        if balance_warning:
            warnings.append(balance_warning)

        requires_review = (
            extracted.extraction_confidence < threshold
            or any(m.suggested_account.confidence < threshold for m in mappings)
            or bool(warnings)
        )

        mapping = LedgerMapping(
            document_type=document_type,
            voucher_type=voucher_type_for(document_type),
            voucher_date=extracted.document_date,
            voucher_text=f"{extracted.supplier} - {extracted.document_number}",
            voucher_lines=voucher_lines,
            supplier_invoice=self._supplier_invoice(document_type, extracted),
            line_item_mappings=mappings,
            suggested_cost_center=cost_center,
            overall_confidence=overall_confidence(extracted, mappings),
            warnings=warnings,
            requires_review=requires_review,
        )

        logger.info(
            f"Mapped {document_type.value} from {extracted.supplier!r}: "
            f"{len(voucher_lines)} voucher lines, confidence {mapping.overall_confidence:.2f}, "
            f"review={'yes' if requires_review else 'no'}"
        )
        for warning in warnings:
            logger.warning(warning)
        return mapping

    def map_salary(self, slip: SalarySpecification) -> LedgerMapping:
        """Build the salary voucher for one salary slip.

        Args:
            slip: Extracted salary specification

        Returns:
            LedgerMapping with voucher type SALARY
        """
        threshold = self._settings.review_confidence_threshold
        voucher_lines = build_salary_voucher_lines(slip, self._salary_accounts, self._reference)
        mappings = [self._salary_line_mapping(earning) for earning in slip.earnings]

        warnings = list(slip.warnings)
        balance_warning = check_balance(voucher_lines)
        if balance_warning:
            warnings.append(balance_warning)

        confidence = round(min(MAXIMUM_CONFIDENCE, slip.confidence), 2)
        requires_review = confidence < threshold or bool(warnings)

        mapping = LedgerMapping(
            document_type=DocumentType.SALARY_SLIP,
            voucher_type=voucher_type_for(DocumentType.SALARY_SLIP),
            voucher_date=slip.pay_date,
            voucher_text=f"Lön {slip.period} - {slip.employee_name}",
            voucher_lines=voucher_lines,
            line_item_mappings=mappings,
            overall_confidence=confidence,
            warnings=warnings,
            requires_review=requires_review,
        )

        logger.info(
            f"Mapped salary slip {slip.period}: {len(voucher_lines)} voucher lines, "
            f"confidence {confidence:.2f}, review={'yes' if requires_review else 'no'}"
        )
        for warning in warnings:
            logger.warning(warning)
        return mapping

    def _salary_line_mapping(self, earning: SalaryEarning) -> LineItemMapping:
        account = self._salary_accounts.earning_account(earning.type, earning.description)
        confidence = SALARY_TABLE_CONFIDENCE if account else SALARY_DEFAULT_CONFIDENCE
        account = account or self._salary_accounts.gross_salary
        return LineItemMapping(
            description=earning.description or earning.type,
            amount=earning.amount,
            suggested_account=AccountSuggestion(
                account=account,
                account_name=self._reference.account_name(account, earning.type),
                confidence=confidence,
                reasoning=f"salary row {earning.type}",
            ),
        )

    def _map_line_items(
        self,
        extracted: ExtractedData,
        document_type: DocumentType,
        cost_center: str | None,
    ) -> list[LineItemMapping]:
        items = extracted.line_items
        if not items:
            return []

        def map_item(item: ExtractedLineItem) -> LineItemMapping:
            suggestion = self._accounts.suggest(item.description, extracted.supplier, document_type)
            return LineItemMapping(
                description=item.description,
                amount=item.net_amount,
                suggested_account=suggestion,
                alternative_accounts=self._accounts.alternatives(suggestion.account),
                suggested_cost_center=cost_center,
            )

        workers = min(self._settings.max_line_item_workers, len(items))
        if workers == 1:
            return [map_item(item) for item in items]
        # executor.map keeps input order
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(map_item, items))

    def _document_level_mapping(
        self, extracted: ExtractedData, cost_center: str | None
    ) -> LineItemMapping:
        suggestion = self._accounts.suggest_for_supplier(extracted.supplier)
        amount = extracted.net_amount or round(extracted.total_amount * FALLBACK_NET_SHARE, 2)
        return LineItemMapping(
            description=extracted.raw_text_summary or FALLBACK_LINE_DESCRIPTION,
            amount=amount,
            suggested_account=suggestion,
            alternative_accounts=self._accounts.alternatives(suggestion.account),
            suggested_cost_center=cost_center,
        )

    @staticmethod
    def _supplier_invoice(
        document_type: DocumentType, extracted: ExtractedData
    ) -> SupplierInvoice | None:
        if document_type not in (DocumentType.INVOICE, DocumentType.CREDIT_NOTE):
            return None
        return SupplierInvoice(
            supplier_name=extracted.supplier,
            supplier_org_number=extracted.supplier_org_number,
            invoice_number=extracted.document_number,
            invoice_date=extracted.document_date,
            due_date=extracted.due_date or default_due_date(extracted.document_date),
            total_amount=extracted.total_amount,
            payment_reference=extracted.payment_reference,
        )
