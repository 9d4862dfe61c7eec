"""API Gateway - FastAPI application exposing policy evaluation and the audit trail."""

import logging, os, threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, List, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codewarden.api.schemas import (
    ErrorResponse,
    EvaluateRequest,
    OverrideRequestBody,
    PolicyListResponse,
    RemediateRequest,
)
from codewarden.common.exceptions import (
    AuditStoreError,
    CodeWardenError,
    InvalidRuleError,
    PolicyViolationError,
    RuleNotFoundError,
)
from codewarden.governance.audit.query import AuditQuery
from codewarden.governance.schemas import (
    AuditEventType,
    AuditResult,
    EvaluationResult,
    IntegrityReport,
    OverrideResult,
    QueryResult,
    RemediationResult,
)
from codewarden.governance.service import GovernanceService

logger = logging.getLogger("codewarden_api")


class ServiceManager:
    """Thread-safe service singleton manager."""

    _instance: Optional[GovernanceService] = None
    _lock = threading.Lock()
    _initialized = False

    @classmethod
    def get_service(cls) -> GovernanceService:
        """Get or create the governance service instance (thread-safe)."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = GovernanceService().start()
                    cls._initialized = True
                    logger.info("GovernanceService initialized")
        return cls._instance

    @classmethod
    def set_service(cls, service: GovernanceService) -> None:
        """Install an already started service (tests, embedding)."""
        with cls._lock:
            cls._instance = service
            cls._initialized = service.is_started

    @classmethod
    def shutdown(cls) -> None:
        """Shutdown the service and release resources."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.shutdown()
                cls._instance = None
                cls._initialized = False

                logger.info("GovernanceService shutdown complete")


def get_service() -> GovernanceService:
    """Get the governance service instance."""
    return ServiceManager.get_service()


# =============================================================================
# CORS CONFIGURATION
# =============================================================================

def get_cors_origins() -> List[str]:
    """Get allowed CORS origins from environment.

    In production, set CODEWARDEN_CORS_ORIGINS to a comma-separated list
    of allowed origins.
    """
    origins_env = os.environ.get("CODEWARDEN_CORS_ORIGINS", "")

    if origins_env:
        return [origin.strip() for origin in origins_env.split(",") if origin.strip()]

    if os.environ.get("CODEWARDEN_ENVIRONMENT", "development") == "production":
        logger.warning(
            "CODEWARDEN_CORS_ORIGINS not set in production. "
            "CORS will be disabled."
        )
        return []

    logger.warning("Running in development mode with permissive CORS (allow_origins=['*'])")
    return ["*"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("CodeWarden API Gateway starting up...")
    get_service()
    logger.info("CodeWarden API Gateway ready")

    yield

    logger.info("CodeWarden API Gateway shutting down...")
    ServiceManager.shutdown()
    logger.info("CodeWarden API Gateway shutdown complete")


environment = os.environ.get("CODEWARDEN_ENVIRONMENT", "development")
enable_docs_default = "false" if environment == "production" else "true"
enable_docs = os.environ.get("CODEWARDEN_ENABLE_DOCS", enable_docs_default).lower() == "true"

app = FastAPI(
    title="CodeWarden API Gateway",
    description="Policy evaluation and tamper-evident audit trail for AI coding assistants.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if enable_docs else None,
    redoc_url="/redoc" if enable_docs else None,
)


cors_origins = get_cors_origins()
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["POST", "GET"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

def _error_response(
    request: Request, status_code: int, error: str, message: str, details=None
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    response = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            message=message,
            request_id=request_id,
            details=details or {},
        ).model_dump(),
    )
    if request_id:
        response.headers["X-Request-ID"] = request_id
    return response


_STATUS_BY_ERROR = {
    RuleNotFoundError: 404,
    InvalidRuleError: 400,
    PolicyViolationError: 409,
    AuditStoreError: 503,
}


@app.exception_handler(CodeWardenError)
async def codewarden_error_handler(request: Request, exc: CodeWardenError) -> JSONResponse:
    """Map the CodeWarden exception hierarchy onto HTTP responses."""
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500
    )
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"{exc.code}: {exc.message}",
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return _error_response(request, status_code, exc.code, exc.message, exc.details)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle validation errors."""
    logger.warning(
        "Validation error",
        extra={"request_id": getattr(request.state, "request_id", None), "error": str(exc)}
    )
    return _error_response(request, 400, "validation_error", str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected errors.

    Logs full exception for debugging but returns sanitized message to client.
    """
    logger.exception(
        "Unexpected error",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "error_type": type(exc).__name__,
        }
    )
    return _error_response(request, 500, "internal_error", "An unexpected error occurred")


# =============================================================================
# MIDDLEWARE
# =============================================================================

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to each request for tracing."""
    request_id = request.headers.get("X-Request-ID") or f"req_{uuid4().hex[:12]}"
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.post(
    "/v1/evaluate",
    response_model=EvaluationResult,
    responses={
        400: {"description": "Invalid request", "model": ErrorResponse},
        503: {"description": "Audit store unavailable", "model": ErrorResponse},
    },
    summary="Evaluate an operation against the active rules",
    description=(
        "Runs every applicable rule and records the decision in the audit log. "
        "A blocked operation is a successful evaluation: check `blocked` and "
        "`summary` in the response."
    ),
)
def evaluate(request: EvaluateRequest) -> EvaluationResult:
    service = get_service()
    context = request.context
    logger.info(
        "Evaluating operation",
        extra={"operation": context.operation, "actor_id": context.actor.id},
    )
    result = service.engine.evaluate(context, timeout=request.timeout_seconds)
    logger.info(
        "Evaluation complete",
        extra={
            "operation": context.operation,
            "outcome": result.outcome,
            "audit_event_id": result.audit_event_id,
        },
    )
    return result


@app.post("/v1/remediate", response_model=RemediationResult)
def remediate(request: RemediateRequest) -> RemediationResult:
    """Attempt auto-fixes for violations from a previous evaluation."""
    return get_service().engine.remediate(request.context, request.violations)


@app.post("/v1/overrides", response_model=OverrideResult)
def request_override(request: OverrideRequestBody) -> OverrideResult:
    """Request an override. Rejections are 200 responses with approved=false."""
    return get_service().override_handler.request_override(
        request.context,
        request.violation,
        request.justification,
        approver_id=request.approver_id,
    )


@app.get("/v1/audit/events", response_model=QueryResult)
def audit_events(
    event_type: Optional[List[AuditEventType]] = Query(default=None),
    actor_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    result: Optional[List[AuditResult]] = Query(default=None),
    has_violations: Optional[bool] = None,
    limit: Optional[int] = Query(default=None, ge=0),
    oldest_first: bool = False,
) -> QueryResult:
    """Query the audit trail. Most recent first unless oldest_first is set."""
    query = AuditQuery()
    if event_type:
        query.event_types(*event_type)
    if actor_id:
        query.actor(actor_id)
    if resource_type:
        query.resource(resource_type, resource_id)
    if start:
        query.since(start)
    if end:
        query.until(end)
    if result:
        query.results(*result)
    if has_violations is not None:
        query.has_violations(has_violations)
    if limit is not None:
        query.limit(limit)
    if oldest_first:
        query.oldest_first()
    return get_service().audit_logger.query(query)


@app.get("/v1/audit/integrity", response_model=IntegrityReport)
def audit_integrity() -> IntegrityReport:
    """Verify the audit hash chain."""
    return get_service().audit_logger.verify_integrity()


@app.get("/v1/policies", response_model=PolicyListResponse)
def list_policies(include_disabled: bool = True) -> PolicyListResponse:
    service = get_service()
    rules = list(service.list_rules(include_disabled=include_disabled))
    return PolicyListResponse(
        rules=rules,
        enabled={rule.id: service.registry.is_enabled(rule.id) for rule in rules},
    )


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "service": "codewarden-gateway"}


@app.get("/ready")
async def readiness_check() -> dict:
    """Readiness check endpoint.

    Returns 503 until the service singleton is initialized.
    """
    if not ServiceManager._initialized:
        raise HTTPException(status_code=503, detail="not_ready")
    return {"status": "ready", "service": "codewarden-gateway"}


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "codewarden.api.gateway:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
