"""Classification -> Extraction -> Ledger Mapping pipeline.

Runs the three stages strictly in order for one document and records a
step per stage. The stages already absorb collaborator failures; any other
error inside a stage is logged, the step is marked failed and a fixed
low-confidence fallback is used so a result is always returned.
"""

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field

from docledger.classification.schema import DocumentClassification, DocumentType
from docledger.classification.service import DocumentClassifier, default_classification
from docledger.extraction.schema import AUTO_NUMBER_PREFIX, UNKNOWN_SUPPLIER, ExtractedData
from docledger.extraction.service import DataExtractor
from docledger.llm.base import CompletionProvider
from docledger.llm.factory import create_completion_provider
from docledger.mapping.schema import LedgerMapping, VoucherType
from docledger.mapping.service import LedgerMapper
from docledger.salary.schema import SalarySpecification
from docledger.salary.service import SalaryExtractor, create_empty_salary_specification
from docledger.shared.config import Settings, get_settings
from docledger.shared.document import DocumentInput
from docledger.shared.parsing import normalize_currency

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUCCESS_CONFIDENCE = 0.7
FAILED_STAGE_CONFIDENCE = 0.3


class Stage(str, Enum):
    CLASSIFICATION = "classification"
    EXTRACTION = "extraction"
    MAPPING = "mapping"


class StageStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class StageStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: Stage
    status: StageStatus
    duration_ms: int = Field(..., ge=0)
    message: str


class PipelineResult(BaseModel):
    """Output of one pipeline run."""

    model_config = ConfigDict(frozen=True)

    classification: DocumentClassification
    extracted_data: ExtractedData
    ledger_mapping: LedgerMapping
    salary_specification: SalarySpecification | None = None
    processing_time_ms: int = Field(..., ge=0)
    steps: list[StageStep]

    @property
    def failed(self) -> bool:
        return any(step.status == StageStatus.FAILED for step in self.steps)


def failed_extraction(base_currency: str = "SEK") -> ExtractedData:
    return ExtractedData(
        supplier=UNKNOWN_SUPPLIER,
        document_number=f"{AUTO_NUMBER_PREFIX}{int(time.time() * 1000)}",
        document_date=date.today().isoformat(),
        currency=normalize_currency(None, None, base_currency),
        total_amount=0.0,
        raw_text_summary="could not extract data",
        extraction_confidence=FAILED_STAGE_CONFIDENCE,
    )


def failed_mapping(document_type: DocumentType, extracted: ExtractedData) -> LedgerMapping:
    return LedgerMapping(
        document_type=document_type,
        voucher_type=VoucherType.JOURNAL,
        voucher_date=extracted.document_date,
        voucher_text="manual review required",
        overall_confidence=FAILED_STAGE_CONFIDENCE,
        warnings=["automatic account mapping failed"],
        requires_review=True,
    )


def _status_for(confidence: float) -> StageStatus:
    return StageStatus.SUCCESS if confidence > SUCCESS_CONFIDENCE else StageStatus.PARTIAL


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class DocumentPipeline:
    """Chains classifier, extractor and mapper for single documents."""

    def __init__(
        self,
        settings: Settings | None = None,
        provider: CompletionProvider | None = None,
        classifier: DocumentClassifier | None = None,
        extractor: DataExtractor | None = None,
        mapper: LedgerMapper | None = None,
        salary_extractor: SalaryExtractor | None = None,
    ) -> None:
        """Initialize pipeline.

        Stages not passed in are built around one shared provider, created
        from settings when not given.
        """
        self._settings = settings or get_settings()
        if provider is None and (
            classifier is None or extractor is None or mapper is None or salary_extractor is None
        ):
            provider = create_completion_provider(self._settings)
        self._classifier = classifier or DocumentClassifier(provider)  # type: ignore[arg-type]
        self._extractor = extractor or DataExtractor(
            provider, self._settings  # type: ignore[arg-type]
        )
        self._mapper = mapper or LedgerMapper(provider, self._settings)
        self._salary_extractor = salary_extractor or SalaryExtractor(
            provider, self._settings  # type: ignore[arg-type]
        )

    def run(self, document: DocumentInput) -> PipelineResult:
        """Process one document through all three stages.

        Args:
            document: Document bytes and/or text

        Returns:
            PipelineResult with one step per stage
        """
        start = time.perf_counter()
        steps: list[StageStep] = []

        classification = self._run_stage(
            Stage.CLASSIFICATION,
            steps,
            lambda: self._classifier.classify(document),
            fallback=lambda: default_classification("classification failed"),
            confidence=lambda c: c.confidence,
            describe=lambda c: f"{c.document_type.value} ({c.confidence:.0%} confidence)",
        )
        document_type = classification.document_type

        if document_type == DocumentType.SALARY_SLIP:
            return self._run_salary(document, classification, steps, start)

        extracted = self._run_stage(
            Stage.EXTRACTION,
            steps,
            lambda: self._extractor.extract(document, document_type),
            fallback=lambda: failed_extraction(self._settings.base_currency),
            confidence=lambda e: e.extraction_confidence,
            describe=lambda e: f"{e.supplier}: {e.total_amount:.2f} {e.currency}",
        )

        mapping = self._run_stage(
            Stage.MAPPING,
            steps,
            lambda: self._mapper.map(document_type, extracted),
            fallback=lambda: failed_mapping(document_type, extracted),
            confidence=lambda m: m.overall_confidence,
            describe=lambda m: f"{len(m.voucher_lines)} voucher lines, {len(m.warnings)} warnings",
        )

        return self._finish(document, start, steps, classification, extracted, mapping)

    def _run_salary(
        self,
        document: DocumentInput,
        classification: DocumentClassification,
        steps: list[StageStep],
        start: float,
    ) -> PipelineResult:
        """Extraction and mapping for salary slips, which post from their own structure."""
        base_currency = self._settings.base_currency
        salary = self._run_stage(
            Stage.EXTRACTION,
            steps,
            lambda: self._salary_extractor.extract(document),
            fallback=lambda: create_empty_salary_specification(base_currency),
            confidence=lambda s: s.confidence,
            describe=lambda s: f"salary {s.period}: {s.net_salary:.2f} {s.currency} net",
        )
        extracted = salary.as_extracted_data()

        mapping = self._run_stage(
            Stage.MAPPING,
            steps,
            lambda: self._mapper.map_salary(salary),
            fallback=lambda: failed_mapping(DocumentType.SALARY_SLIP, extracted),
            confidence=lambda m: m.overall_confidence,
            describe=lambda m: f"{len(m.voucher_lines)} voucher lines, {len(m.warnings)} warnings",
        )
        return self._finish(
            document, start, steps, classification, extracted, mapping, salary_specification=salary
        )

    @staticmethod
    def _finish(
        document: DocumentInput,
        start: float,
        steps: list[StageStep],
        classification: DocumentClassification,
        extracted: ExtractedData,
        mapping: LedgerMapping,
        salary_specification: SalarySpecification | None = None,
    ) -> PipelineResult:
        result = PipelineResult(
            classification=classification,
            extracted_data=extracted,
            ledger_mapping=mapping,
            salary_specification=salary_specification,
            processing_time_ms=_elapsed_ms(start),
            steps=steps,
        )
        outcome = ", ".join(f"{s.stage.value}={s.status.value}" for s in steps)
        logger.info(
            f"Processed document {document.filename or '<text>'} "
            f"in {result.processing_time_ms} ms ({outcome})"
        )
        return result

    def process_batch(
        self, documents: Sequence[DocumentInput], max_workers: int = 4
    ) -> list[PipelineResult]:
        """Run unrelated documents in parallel.

        Runs share no mutable state, so each document gets its own thread.

        Args:
            documents: Documents to process
            max_workers: Upper bound on concurrent runs

        Returns:
            Results in input order
        """
        if not documents:
            return []
        workers = max(1, min(max_workers, len(documents)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self.run, documents))

    def _run_stage(
        self,
        stage: Stage,
        steps: list[StageStep],
        call: Callable[[], T],
        fallback: Callable[[], T],
        confidence: Callable[[T], float],
        describe: Callable[[T], str],
    ) -> T:
        start = time.perf_counter()
        try:
            value = call()
        except Exception as e:
            logger.exception(f"Stage {stage.value} failed: {e}")
            steps.append(
                StageStep(
                    stage=stage,
                    status=StageStatus.FAILED,
                    duration_ms=_elapsed_ms(start),
                    message=f"{stage.value} failed: {e}",
                )
            )
            return fallback()

        steps.append(
            StageStep(
                stage=stage,
                status=_status_for(confidence(value)),
                duration_ms=_elapsed_ms(start),
                message=describe(value),
            )
        )
        return value
