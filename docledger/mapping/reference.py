"""Reference tables for ledger mapping.

Loads the chart of accounts, the known-supplier table and the
representation keywords from YAML once per directory. All lookups are
read-only: records are frozen dataclasses and the account index is a
mapping proxy, so the tables can be shared between threads.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

import yaml

from docledger.mapping.matching import contains_term, normalize_text

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_DATA_DIR = Path(__file__).parent / "reference_data"


@dataclass(frozen=True, slots=True)
class ChartAccount:
    account: str
    name: str
    category: str
    keywords: tuple[str, ...] = ()
    vendors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class KnownSupplier:
    key: str
    account: str
    category: str
    cost_center: str | None = None


@dataclass(frozen=True, slots=True)
class PostingAccounts:
    input_vat: str
    accounts_payable: str
    card: str
    cash: str
    default_expense: str


@dataclass(frozen=True, slots=True)
class ReferenceData:
    """Immutable reference tables with the lookups the mapper needs."""

    accounts: Mapping[str, ChartAccount]
    common_expense_accounts: tuple[ChartAccount, ...]
    suppliers: tuple[KnownSupplier, ...]
    representation_keywords: tuple[str, ...]
    representation_cost_center: str
    posting: PostingAccounts

    @classmethod
    def load_from_dir(cls, data_dir: Path) -> "ReferenceData":
        chart = _load_yaml(data_dir / "chart_of_accounts.yml") or {}
        suppliers = _load_yaml(data_dir / "suppliers.yml") or {}
        keywords = _load_yaml(data_dir / "keywords.yml") or {}

        accounts: dict[str, ChartAccount] = {}
        for entry in chart.get("accounts") or []:
            record = ChartAccount(
                account=str(entry["account"]),
                name=str(entry["name"]),
                category=str(entry.get("category") or ""),
                keywords=tuple(normalize_text(str(k)) for k in entry.get("keywords") or []),
                vendors=tuple(normalize_text(str(v)) for v in entry.get("vendors") or []),
            )
            accounts[record.account] = record

        common = []
        for code in chart.get("common_expense_accounts") or []:
            record = accounts.get(str(code))
            if record is None:
                raise ValueError(f"Common expense account {code} is not in the chart of accounts")
            common.append(record)
        common.sort(key=lambda a: a.account)

        posting = chart.get("posting_accounts") or {}
        posting_accounts = PostingAccounts(
            input_vat=str(posting.get("input_vat", "2640")),
            accounts_payable=str(posting.get("accounts_payable", "2440")),
            card=str(posting.get("card", "1930")),
            cash=str(posting.get("cash", "1910")),
            default_expense=str(posting.get("default_expense", "6550")),
        )

        known_suppliers = [
            KnownSupplier(
                key=normalize_text(str(s["key"])),
                account=str(s["account"]),
                category=str(s.get("category") or ""),
                cost_center=s.get("cost_center"),
            )
            for s in suppliers.get("suppliers") or []
        ]
        # Longest key first, so the first hit is the most specific one.
        known_suppliers.sort(key=lambda s: len(s.key), reverse=True)

        return cls(
            accounts=MappingProxyType(accounts),
            common_expense_accounts=tuple(common),
            suppliers=tuple(known_suppliers),
            representation_keywords=tuple(
                normalize_text(str(k)) for k in keywords.get("representation_keywords") or []
            ),
            representation_cost_center=str(keywords.get("representation_cost_center") or "REP"),
            posting=posting_accounts,
        )

    def find_account(self, code: str) -> ChartAccount | None:
        return self.accounts.get(code)

    def account_name(self, code: str, default: str = "") -> str:
        record = self.find_account(code)
        return record.name if record else default

    def find_supplier(self, supplier: str | None) -> KnownSupplier | None:
        """Return the known supplier whose key occurs in the supplier name (longest key wins)."""
        haystack = normalize_text(supplier)
        if not haystack:
            return None
        for known in self.suppliers:
            if contains_term(haystack, known.key):
                return known
        return None

    def match_chart_account(
        self, description: str, supplier: str | None = None
    ) -> ChartAccount | None:
        """Match a line against the chart: typical vendors first, then keywords.

        Returns None when nothing matches, leaving the decision to the caller.
        """
        supplier_text = normalize_text(supplier)
        if supplier_text:
            for record in self.accounts.values():
                if any(contains_term(supplier_text, vendor) for vendor in record.vendors):
                    return record

        search_text = normalize_text(f"{description} {supplier or ''}")
        if not search_text:
            return None
        for record in self.accounts.values():
            if any(contains_term(search_text, keyword) for keyword in record.keywords):
                return record
        return None

    def alternatives(self, code: str, limit: int = 3) -> list[ChartAccount]:
        """Common expense accounts in the same category as code, excluding code itself."""
        primary = self.find_account(code)
        if primary is None:
            return []
        return [
            record
            for record in self.common_expense_accounts
            if record.account != code and record.category == primary.category
        ][:limit]

    def is_common_expense_account(self, code: str) -> bool:
        return any(record.account == code for record in self.common_expense_accounts)

    def representation_hits(self, text: str | None) -> int:
        """Number of distinct representation keywords found in text."""
        haystack = normalize_text(text)
        if not haystack:
            return 0
        return sum(
            1 for keyword in self.representation_keywords if contains_term(haystack, keyword)
        )


def _load_yaml(path: Path) -> dict | None:
    if not path.exists():
        raise FileNotFoundError(str(path))
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping at {path}, got {type(data).__name__}.")
    return data


@lru_cache(maxsize=8)
def load_reference_data(data_dir: Path | None = None) -> ReferenceData:
    """Load (once per directory) the reference tables.

    Args:
        data_dir: Directory holding the YAML tables (defaults to the packaged tables)

    Returns:
        Shared immutable ReferenceData
    """
    directory = data_dir or DEFAULT_REFERENCE_DATA_DIR
    data = ReferenceData.load_from_dir(directory)
    logger.info(
        f"Loaded reference data from {directory}: {len(data.accounts)} accounts, "
        f"{len(data.suppliers)} known suppliers"
    )
    return data
