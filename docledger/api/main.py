"""FastAPI application for the document-to-ledger pipeline.

Thin HTTP surface over the pipeline:
- Health and readiness checks for Kubernetes
- Full pipeline run for an uploaded document and/or OCR text
- Per-stage endpoints (classify, extract, map) with JSON bodies
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import base64
import binascii
import time
import uuid

from fastapi import FastAPI, File, Form, HTTPException, Request, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ValidationError

from docledger.api import metrics
from docledger.classification.schema import DocumentClassification, DocumentType
from docledger.classification.service import DocumentClassifier
from docledger.extraction.schema import ExtractedData
from docledger.extraction.service import DataExtractor
from docledger.llm.factory import create_completion_provider
from docledger.mapping.schema import LedgerMapping
from docledger.mapping.service import LedgerMapper
from docledger.pipeline.orchestrator import DocumentPipeline, PipelineResult
from docledger.salary.schema import SalarySpecification
from docledger.salary.service import SalaryExtractor
from docledger.shared.config import get_settings
from docledger.shared.document import DocumentInput, media_type_for
from docledger.shared.logging_setup import configure_logging

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title="Document Ledger Pipeline",
    description=(
        "Classifies bookkeeping documents, extracts their data and proposes balanced vouchers"
    ),
    version=settings.service_version,
)

provider = create_completion_provider(settings)
classifier = DocumentClassifier(provider)
extractor = DataExtractor(provider, settings)
mapper = LedgerMapper(provider, settings)
salary_extractor = SalaryExtractor(provider, settings)
pipeline = DocumentPipeline(
    settings,
    provider=provider,
    classifier=classifier,
    extractor=extractor,
    mapper=mapper,
    salary_extractor=salary_extractor,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    provider: str
    provider_available: bool


class ProcessResponse(BaseModel):
    """Full pipeline response."""

    document_id: str
    result: PipelineResult


class DocumentPayload(BaseModel):
    """Document sent as JSON: OCR text and/or base64-encoded file bytes."""

    text: str | None = None
    content_base64: str | None = None
    filename: str | None = None
    media_type: str | None = None

    def to_document(self) -> DocumentInput:
        content = None
        if self.content_base64:
            try:
                content = base64.b64decode(self.content_base64, validate=True)
            except (binascii.Error, ValueError) as e:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"content_base64 is not valid base64: {e}",
                ) from e
        try:
            if content:
                return DocumentInput.from_bytes(
                    content, filename=self.filename, media_type=self.media_type, text=self.text
                )
            return DocumentInput(text=self.text, filename=self.filename)
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Provide document text or content_base64",
            ) from e


class ExtractRequest(DocumentPayload):
    document_type: DocumentType


class MapRequest(BaseModel):
    document_type: DocumentType
    extracted_data: ExtractedData


def _record_pipeline_metrics(result: PipelineResult) -> None:
    for step in result.steps:
        metrics.pipeline_stage_duration_seconds.labels(stage=step.stage.value).observe(
            step.duration_ms / 1000
        )
        metrics.pipeline_stage_total.labels(stage=step.stage.value, status=step.status.value).inc()

    status_label = "failed" if result.failed else "success"
    metrics.documents_processed_total.labels(status=status_label).inc()
    if result.ledger_mapping.requires_review:
        metrics.documents_requiring_review_total.inc()


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness checks.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness checks.

    The service stays ready when the collaborator is unavailable: every
    stage then falls back to its low-confidence defaults.

    Returns:
        Readiness status
    """
    return ReadinessResponse(
        ready=True,
        provider=provider.provider_name,
        provider_available=provider.is_available(),
    )


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/documents/process", response_model=ProcessResponse, tags=["Documents"])
async def process_document(
    file: UploadFile | None = File(None, description="Image or PDF of the document"),  # noqa: B008
    text: str | None = Form(None, description="OCR text of the document"),  # noqa: B008
) -> ProcessResponse:
    """Run classification, extraction and ledger mapping for one document.

    ## Usage Examples

    **Scanned receipt:**
    ```bash
    curl -X POST "http://localhost:8000/api/v1/documents/process" \\
      -F "file=@receipt.jpg"
    ```

    **OCR text only:**
    ```bash
    curl -X POST "http://localhost:8000/api/v1/documents/process" \\
      -F "text=FAKTURA Telia ... Att betala 1 249,00 kr"
    ```

    ## Error Handling

    - Returns 400 if neither a non-empty file nor text is given
    - Collaborator failures never fail the request: the result carries
      low-confidence defaults, warnings and `requires_review: true`

    Args:
        file: Document file (optional when text is given)
        text: OCR text (optional when a file is given)

    Returns:
        Pipeline result with a step per stage

    Raises:
        HTTPException: If no usable input is provided
    """
    content = await file.read() if file is not None else b""
    has_text = bool(text and text.strip())

    if not content and not has_text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide a non-empty file or text",
        )

    if content:
        metrics.document_upload_size_bytes.observe(len(content))
        filename = file.filename if file is not None else None
        content_type = file.content_type if file is not None else None
        if not content_type or not (
            content_type.startswith("image/") or content_type == "application/pdf"
        ):
            content_type = media_type_for(filename)
        document = DocumentInput.from_bytes(
            content, filename=filename, media_type=content_type, text=text if has_text else None
        )
    else:
        document = DocumentInput.from_text(text or "")

    result = await run_in_threadpool(pipeline.run, document)
    _record_pipeline_metrics(result)

    return ProcessResponse(document_id=str(uuid.uuid4()), result=result)


@app.post("/api/v1/classify", response_model=DocumentClassification, tags=["Stages"])
async def classify_document(payload: DocumentPayload) -> DocumentClassification:
    """Classify a document (stage 1 only)."""
    document = payload.to_document()
    return await run_in_threadpool(classifier.classify, document)


@app.post("/api/v1/extract", response_model=ExtractedData, tags=["Stages"])
async def extract_document(payload: ExtractRequest) -> ExtractedData:
    """Extract structured data for a document of a known type (stage 2 only)."""
    document = payload.to_document()
    return await run_in_threadpool(extractor.extract, document, payload.document_type)


@app.post("/api/v1/map", response_model=LedgerMapping, tags=["Stages"])
async def map_document(payload: MapRequest) -> LedgerMapping:
    """Map already extracted data onto accounts and voucher lines (stage 3 only)."""
    return await run_in_threadpool(mapper.map, payload.document_type, payload.extracted_data)


@app.post("/api/v1/salary/extract", response_model=SalarySpecification, tags=["Salary"])
async def extract_salary(payload: DocumentPayload) -> SalarySpecification:
    """Extract the salary specification from a salary slip."""
    document = payload.to_document()
    return await run_in_threadpool(salary_extractor.extract, document)


@app.post("/api/v1/salary/map", response_model=LedgerMapping, tags=["Salary"])
async def map_salary(payload: SalarySpecification) -> LedgerMapping:
    """Build the salary voucher for an already extracted salary specification."""
    return await run_in_threadpool(mapper.map_salary, payload)
