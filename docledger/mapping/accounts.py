"""Per-line ledger account suggestion.

Ordered chain with early return (not a weighted vote):
1. known supplier table           -> 0.9
2. chart of accounts vendors/keywords -> 0.8
3. collaborator, constrained to the common expense accounts -> 0.75,
   or the default account at 0.6 when the call or its reply fails
"""

import logging
from collections.abc import Callable

from docledger.classification.schema import DocumentType
from docledger.llm.base import CollaboratorError, CompletionProvider
from docledger.mapping.reference import ReferenceData
from docledger.mapping.schema import AccountSuggestion
from docledger.shared.parsing import Fallback, Parsed, ParseOutcome, extract_json_object

logger = logging.getLogger(__name__)

KNOWN_SUPPLIER_CONFIDENCE = 0.9
CHART_MATCH_CONFIDENCE = 0.8
COLLABORATOR_CONFIDENCE = 0.75
DEFAULT_ACCOUNT_CONFIDENCE = 0.6
SUPPLIER_DEFAULT_CONFIDENCE = 0.65
ALTERNATIVE_CONFIDENCE = 0.5

ACCOUNT_PROMPT = """You are a Swedish bookkeeping expert. Which BAS account fits this cost best?

Supplier: {supplier}
Description: {description}
Document type: {document_type}

COMMON EXPENSE ACCOUNTS:
{account_list}

Answer ONLY with JSON:
{{
  "account": "4-digit account number from the list above",
  "reasoning": "short explanation"
}}"""

AccountResolver = Callable[[str, str, DocumentType], AccountSuggestion | None]


def default_account_suggestion(
    reference: ReferenceData, reasoning: str = "default account (needs review)"
) -> AccountSuggestion:
    code = reference.posting.default_expense
    return AccountSuggestion(
        account=code,
        account_name=reference.account_name(code, "Konsultarvoden"),
        confidence=DEFAULT_ACCOUNT_CONFIDENCE,
        reasoning=reasoning,
    )


def parse_account_response(text: str, reference: ReferenceData) -> ParseOutcome[AccountSuggestion]:
    """Parse the collaborator's account choice.

    Only accounts from the common expense list are accepted; anything else
    falls back to the default account.
    """
    data = extract_json_object(text)
    if data is None:
        return Fallback(
            default_account_suggestion(reference), reason="no JSON object in account response"
        )

    code = str(data.get("account") or "").strip()
    if not reference.is_common_expense_account(code):
        return Fallback(
            default_account_suggestion(reference),
            reason=f"account {code!r} is not a common expense account",
        )

    return Parsed(
        AccountSuggestion(
            account=code,
            account_name=reference.account_name(code),
            confidence=COLLABORATOR_CONFIDENCE,
            reasoning=str(data.get("reasoning") or "suggested by language model"),
        )
    )


class AccountSuggester:
    """Resolves ledger accounts for line items."""

    def __init__(
        self, reference: ReferenceData, provider: CompletionProvider | None = None
    ) -> None:
        self._reference = reference
        self._provider = provider
        self._resolvers: tuple[AccountResolver, ...] = (
            self._from_known_supplier,
            self._from_chart,
        )

    def suggest(
        self, description: str, supplier: str, document_type: DocumentType
    ) -> AccountSuggestion:
        """Suggest an account for one line item.

        Args:
            description: Line item description
            supplier: Supplier name of the document
            document_type: Classified document type

        Returns:
            First suggestion produced by the chain; never raises
        """
        for resolver in self._resolvers:
            suggestion = resolver(description, supplier, document_type)
            if suggestion is not None:
                return suggestion
        return self._from_collaborator(description, supplier, document_type)

    def suggest_for_supplier(self, supplier: str) -> AccountSuggestion:
        """Account for a document without line items: known supplier, else the default at 0.65."""
        suggestion = self._from_known_supplier("", supplier, DocumentType.OTHER)
        if suggestion is not None:
            return suggestion
        code = self._reference.posting.default_expense
        return AccountSuggestion(
            account=code,
            account_name=self._reference.account_name(code, "Konsultarvoden"),
            confidence=SUPPLIER_DEFAULT_CONFIDENCE,
            reasoning="default account for unknown supplier",
        )

    def alternatives(self, code: str) -> list[AccountSuggestion]:
        """Up to three common expense accounts in the same category."""
        return [
            AccountSuggestion(
                account=record.account,
                account_name=record.name,
                confidence=ALTERNATIVE_CONFIDENCE,
                reasoning="alternative account in the same category",
            )
            for record in self._reference.alternatives(code)
        ]

    def build_prompt(self, description: str, supplier: str, document_type: DocumentType) -> str:
        account_list = "\n".join(
            f"{record.account}: {record.name} ({record.category})"
            for record in self._reference.common_expense_accounts
        )
        return ACCOUNT_PROMPT.format(
            supplier=supplier,
            description=description,
            document_type=document_type.value,
            account_list=account_list,
        )

    def _from_known_supplier(
        self, description: str, supplier: str, document_type: DocumentType
    ) -> AccountSuggestion | None:
        known = self._reference.find_supplier(supplier)
        if known is None:
            return None
        return AccountSuggestion(
            account=known.account,
            account_name=self._reference.account_name(known.account, known.category),
            confidence=KNOWN_SUPPLIER_CONFIDENCE,
            reasoning=f"known supplier: {known.category}",
        )

    def _from_chart(
        self, description: str, supplier: str, document_type: DocumentType
    ) -> AccountSuggestion | None:
        record = self._reference.match_chart_account(description, supplier)
        if record is None:
            return None
        return AccountSuggestion(
            account=record.account,
            account_name=record.name,
            confidence=CHART_MATCH_CONFIDENCE,
            reasoning=f"matched category: {record.category}",
        )

    def _from_collaborator(
        self, description: str, supplier: str, document_type: DocumentType
    ) -> AccountSuggestion:
        if self._provider is None:
            return default_account_suggestion(self._reference)

        prompt = self.build_prompt(description, supplier, document_type)
        try:
            response = self._provider.complete(prompt, max_tokens=256)
        except CollaboratorError as e:
            logger.error(f"Account suggestion call failed for {description!r}: {e}")
            return default_account_suggestion(self._reference)

        outcome = parse_account_response(response, self._reference)
        if isinstance(outcome, Fallback):
            logger.warning(f"{outcome.reason}; using default account for {description!r}")
        return outcome.value
