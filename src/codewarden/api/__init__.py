"""API - HTTP surface for policy evaluation and the audit trail.

Endpoints:
    POST /v1/evaluate
    POST /v1/remediate
    POST /v1/overrides
    GET  /v1/audit/events
    GET  /v1/audit/integrity
    GET  /v1/policies
"""

from codewarden.api.gateway import app
from codewarden.api.schemas import (
    ErrorResponse,
    EvaluateRequest,
    OverrideRequestBody,
    RemediateRequest,
)

__all__ = [
    "app",
    "EvaluateRequest",
    "RemediateRequest",
    "OverrideRequestBody",
    "ErrorResponse",
]
