"""FastAPI application for the invoice agent.

Production-ready API with:
- Health and readiness checks for Kubernetes
- Language-model agent endpoints (extraction, anomaly detection, reminder emails)
- Invoice bookkeeping, payments, reminders and reports
- Browser automation against connected email and accounting portals
- Prometheus metrics for monitoring

Handlers are synchronous; FastAPI runs them in its threadpool because every
collaborator (datastore, language model, gateway, remote browser) blocks.

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import tempfile
import time
from datetime import date
from pathlib import Path
from typing import Literal

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from pydantic import ValidationError

from services.agent.schema import ExtractedInvoiceData
from services.api import metrics
from services.api.dependencies import ServiceContainer, get_services
from services.api.schemas import (
    ConnectionRequest,
    ConnectionResponse,
    DetectAnomalyRequest,
    DetectAnomalyResponse,
    DownloadRequest,
    DownloadResponse,
    EmailReminderRequest,
    EmailReminderResponse,
    HealthResponse,
    MarkOverdueRequest,
    MarkOverdueResponse,
    PaymentIntentResponse,
    ProcessInvoiceResponse,
    ReadinessResponse,
    ReminderRequest,
    UploadRequest,
    UploadResponse,
)
from services.browser.schema import AccountingRecord
from services.invoices.service import DashboardSummary, SortField
from services.payments.processor import PaymentReport
from services.records.schema import (
    AccountConnection,
    ConnectionProvider,
    Invoice,
    InvoiceStatus,
    NewInvoice,
    PaymentRecord,
    Reminder,
)
from services.shared.config import get_settings
from services.shared.exceptions import (
    AutomationError,
    InvalidRequestError,
    InvoiceAgentError,
    NotFoundError,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Invoice Agent",
    description="AI-assisted invoice extraction, anomaly detection, payments and portal automation",
    version=settings.service_version,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, route template, and status
    - Request duration by method and route template
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Label by route template so path parameters don't explode cardinality
    route = request.scope.get("route")
    endpoint = getattr(route, "path", "unmatched")

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


def _http_error(e: InvoiceAgentError, failure_detail: str) -> HTTPException:
    """Translate a service error into the matching HTTP error."""
    if isinstance(e, InvalidRequestError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    logger.error(f"{failure_detail}: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail)


def _connection_response(connection: AccountConnection) -> ConnectionResponse:
    return ConnectionResponse(
        id=connection.id,
        user_id=connection.user_id,
        provider=connection.provider,
        created_at=connection.created_at,
        updated_at=connection.updated_at,
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe."""
    return ReadinessResponse(ready=True)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


# Agent


@app.post("/api/agent/detect-anomaly", response_model=DetectAnomalyResponse, tags=["Agent"])
def detect_anomaly(
    body: DetectAnomalyRequest, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> DetectAnomalyResponse:
    """Compare a new invoice with the user's recent history.

    Returns 400 if ``userId`` or ``invoiceData`` is missing or the invoice
    fields cannot be parsed, and 500 if the language model fails or answers
    outside the verdict contract.
    """
    if not body.user_id or body.invoice_data is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User ID and invoice data are required",
        )
    try:
        invoice_data = ExtractedInvoiceData.model_validate(body.invoice_data)
    except ValidationError as e:
        logger.warning(f"Rejected invoice data for anomaly check: {e.error_count()} errors")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid invoice data"
        ) from e

    start = time.time()
    try:
        verdict = services.anomaly_detector.detect(body.user_id, invoice_data)
    except Exception:
        metrics.llm_operations_total.labels(operation="anomaly", status="failed").inc()
        logger.exception("Error detecting anomalies")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to analyze invoice",
        ) from None
    metrics.llm_operation_duration_seconds.labels(operation="anomaly").observe(time.time() - start)
    metrics.llm_operations_total.labels(operation="anomaly", status="success").inc()

    if not verdict.compared:
        metrics.anomaly_verdicts_total.labels(verdict="insufficient_history").inc()
    else:
        metrics.anomaly_verdicts_total.labels(
            verdict="anomalous" if verdict.is_anomaly else "normal"
        ).inc()

    message = (
        "This invoice appears unusual compared to your history. Please review carefully."
        if verdict.is_anomaly
        else "No anomalies detected."
    )
    return DetectAnomalyResponse(is_anomaly=verdict.is_anomaly, message=message)


@app.post("/api/agent/email-reminder", response_model=EmailReminderResponse, tags=["Agent"])
def email_reminder(
    body: EmailReminderRequest, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> EmailReminderResponse:
    """Draft a payment reminder email for an invoice."""
    if not body.invoice_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invoice ID is required"
        )

    try:
        invoice = services.invoices.get_invoice(body.invoice_id)
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found"
        ) from None
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to generate reminder email") from e

    start = time.time()
    try:
        email_content = services.email_drafter.draft(invoice)
    except Exception:
        metrics.llm_operations_total.labels(operation="email", status="failed").inc()
        logger.exception(f"Error generating reminder email for invoice {invoice.id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate reminder email",
        ) from None
    metrics.llm_operation_duration_seconds.labels(operation="email").observe(time.time() - start)
    metrics.llm_operations_total.labels(operation="email", status="success").inc()

    return EmailReminderResponse(email_content=email_content)


@app.post("/api/agent/process-invoice", response_model=ProcessInvoiceResponse, tags=["Agent"])
def process_invoice(
    file: UploadFile | None = File(None, description="Invoice document"),  # noqa: B008
    user_id: str | None = Form(None, alias="userId"),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> ProcessInvoiceResponse:
    """Extract, categorise and store an uploaded invoice document.

    ## Usage

    ```bash
    curl -X POST "http://localhost:8000/api/agent/process-invoice" \\
      -F "file=@invoice.txt" -F "userId=<user id>"
    ```

    ## Error Handling

    - Returns 400 if the file or ``userId`` is missing, or the file is empty
    - Returns 500 if extraction fails or lacks vendor/amount
    """
    if file is None or not user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="File and userId are required"
        )

    content = file.file.read()
    metrics.document_upload_size_bytes.observe(len(content))

    start = time.time()
    try:
        result = services.invoices.process_document(
            user_id, file.filename or "document", content, file.content_type
        )
    except InvalidRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e
    except Exception:
        metrics.llm_operations_total.labels(operation="extraction", status="failed").inc()
        logger.exception(f"Error processing invoice for user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process invoice",
        ) from None
    metrics.llm_operation_duration_seconds.labels(operation="extraction").observe(
        time.time() - start
    )
    metrics.llm_operations_total.labels(operation="extraction", status="success").inc()

    return ProcessInvoiceResponse(
        invoice=result.invoice,
        extracted_data=result.extracted,
        suggested_category=result.suggested_category,
    )


# Invoices


@app.post(
    "/api/invoices",
    response_model=Invoice,
    status_code=status.HTTP_201_CREATED,
    tags=["Invoices"],
)
def create_invoice(
    body: NewInvoice, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> Invoice:
    """Create an invoice from manually entered fields."""
    try:
        return services.invoices.create_invoice(body)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to create invoice") from e


@app.get("/api/invoices", response_model=list[Invoice], tags=["Invoices"])
def list_invoices(
    user_id: str = Query(..., alias="userId"),
    invoice_status: InvoiceStatus | None = Query(None, alias="status"),
    sort_by: SortField = Query("due_date", alias="sortBy"),
    order: Literal["asc", "desc"] = Query("asc"),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> list[Invoice]:
    try:
        return services.invoices.list_invoices(
            user_id, status=invoice_status, sort_by=sort_by, descending=order == "desc"
        )
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to list invoices") from e


@app.get("/api/invoices/summary", response_model=DashboardSummary, tags=["Invoices"])
def invoice_summary(
    user_id: str = Query(..., alias="userId"),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> DashboardSummary:
    """Dashboard totals: pending, paid, and pending invoices due within a week."""
    try:
        return services.invoices.dashboard_summary(user_id)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to summarise invoices") from e


@app.post("/api/invoices/mark-overdue", response_model=MarkOverdueResponse, tags=["Invoices"])
def mark_overdue(
    body: MarkOverdueRequest, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> MarkOverdueResponse:
    try:
        updated = services.invoices.mark_overdue(body.user_id, body.today)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to mark overdue invoices") from e
    return MarkOverdueResponse(updated=updated)


@app.get("/api/invoices/{invoice_id}", response_model=Invoice, tags=["Invoices"])
def get_invoice(
    invoice_id: str, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> Invoice:
    try:
        return services.invoices.get_invoice(invoice_id)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to load invoice") from e


# Payments


@app.post(
    "/api/invoices/{invoice_id}/payments",
    response_model=PaymentIntentResponse,
    tags=["Payments"],
)
def create_payment(
    invoice_id: str, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> PaymentIntentResponse:
    """Create a gateway payment intent and move the invoice to processing."""
    try:
        client_secret = services.payments.process_payment(invoice_id)
    except InvoiceAgentError as e:
        metrics.payment_intents_total.labels(status="failed").inc()
        raise _http_error(e, "Failed to process payment") from e
    metrics.payment_intents_total.labels(status="created").inc()
    return PaymentIntentResponse(client_secret=client_secret)


@app.post(
    "/api/invoices/{invoice_id}/mark-paid", response_model=PaymentRecord, tags=["Payments"]
)
def mark_paid(
    invoice_id: str, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> PaymentRecord:
    """Record a manual payment for the full amount."""
    try:
        return services.payments.record_manual_payment(invoice_id)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to record payment") from e


@app.post(
    "/api/invoices/{invoice_id}/reminders",
    response_model=Reminder,
    status_code=status.HTTP_201_CREATED,
    tags=["Payments"],
)
def schedule_reminder(
    invoice_id: str,
    body: ReminderRequest,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Reminder:
    try:
        return services.payments.schedule_reminder(invoice_id, body.reminder_date, body.message)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to schedule reminder") from e


@app.get("/api/reports/payments", response_model=PaymentReport, tags=["Payments"])
def payment_report(
    user_id: str = Query(..., alias="userId"),
    start: date = Query(...),
    end: date = Query(...),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> PaymentReport:
    """Invoiced vs. paid totals for invoices issued between ``start`` and ``end``."""
    try:
        return services.payments.generate_payment_report(user_id, start, end)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to generate payment report") from e


# Account connections


@app.put("/api/connections", response_model=ConnectionResponse, tags=["Connections"])
def save_connection(
    body: ConnectionRequest, services: ServiceContainer = Depends(get_services)  # noqa: B008
) -> ConnectionResponse:
    """Store encrypted portal credentials, replacing any existing connection."""
    try:
        connection = services.vault.connection_for(body.user_id, body.provider, body.credentials)
        stored = services.repository.upsert_connection(connection)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to save connection") from e
    logger.info(f"Saved {body.provider.value} connection for user {body.user_id}")
    return _connection_response(stored)


@app.get("/api/connections", response_model=list[ConnectionResponse], tags=["Connections"])
def list_connections(
    user_id: str = Query(..., alias="userId"),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> list[ConnectionResponse]:
    try:
        connections = services.repository.list_connections(user_id)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to list connections") from e
    return [_connection_response(connection) for connection in connections]


@app.delete(
    "/api/connections/{provider}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Connections"],
)
def delete_connection(
    provider: ConnectionProvider,
    user_id: str = Query(..., alias="userId"),
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> Response:
    try:
        deleted = services.repository.delete_connection(user_id, provider)
    except InvoiceAgentError as e:
        raise _http_error(e, "Failed to delete connection") from e
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {provider.value} connection found",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _automation_failure(e: AutomationError) -> HTTPException:
    report = e.report.model_dump(mode="json") if e.report is not None else None
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": e.message, "report": report},
    )


@app.post(
    "/api/connections/{provider}/download",
    response_model=DownloadResponse,
    tags=["Connections"],
)
def download_from_portal(
    provider: ConnectionProvider,
    body: DownloadRequest,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> DownloadResponse:
    """Download invoice attachments from a connected mailbox.

    A failed run returns 500 with the partial report in the error detail.
    """
    try:
        report = services.browser.download_invoices(body.user_id, provider)
    except AutomationError as e:
        metrics.browser_runs_total.labels(provider=provider.value, status="failed").inc()
        raise _automation_failure(e) from e
    except InvoiceAgentError as e:
        metrics.browser_runs_total.labels(provider=provider.value, status="failed").inc()
        raise _http_error(e, f"Failed to download from {provider.value}") from e

    metrics.browser_runs_total.labels(provider=provider.value, status="success").inc()
    return DownloadResponse(files=report.files, messages=report.messages)


@app.post(
    "/api/connections/{provider}/upload",
    response_model=UploadResponse,
    tags=["Connections"],
)
def upload_to_portal(
    provider: ConnectionProvider,
    body: UploadRequest,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> UploadResponse:
    """Enter a stored invoice into connected accounting software.

    The stored document is attached when object storage holds a copy.
    """
    try:
        invoice = services.invoices.get_invoice(body.invoice_id)
        if invoice.user_id != body.user_id:
            raise NotFoundError("Invoice not found", {"invoice_id": body.invoice_id})

        with tempfile.TemporaryDirectory() as workdir:
            document = None
            if invoice.file_path and services.storage.is_available():
                stored = services.storage.fetch_document(invoice.file_path)
                if stored.success and stored.data is not None:
                    document = Path(workdir) / Path(invoice.file_path).name
                    document.write_bytes(stored.data)
                else:
                    logger.warning(f"Document for invoice {invoice.id} unavailable: {stored.error}")

            report = services.browser.upload_invoice(
                body.user_id, provider, document, AccountingRecord.from_invoice(invoice)
            )
    except AutomationError as e:
        metrics.browser_runs_total.labels(provider=provider.value, status="failed").inc()
        raise _automation_failure(e) from e
    except InvoiceAgentError as e:
        metrics.browser_runs_total.labels(provider=provider.value, status="failed").inc()
        raise _http_error(e, f"Failed to upload to {provider.value}") from e

    metrics.browser_runs_total.labels(provider=provider.value, status="success").inc()
    return UploadResponse(submitted=report.submitted, document_attached=report.document_attached)
