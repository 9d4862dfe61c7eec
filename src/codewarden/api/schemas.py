"""API Schemas - Request/Response models for the API Gateway.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from codewarden.governance.schemas import (
    OperationContext,
    PolicyRule,
    PolicyViolation,
)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class EvaluateRequest(BaseModel):
    """Request body for POST /v1/evaluate."""
    context: OperationContext = Field(..., description="The operation to evaluate")
    timeout_seconds: Optional[float] = Field(
        default=None, gt=0,
        description="Evaluation deadline. Server default if omitted."
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "context": {
                    "operation": "code.commit",
                    "actor": {"id": "user_abc123", "type": "user"},
                    "resource": {"type": "repository", "id": "repo_42", "name": "payments"},
                    "code": {
                        "files": {
                            "app/config.py": "API_KEY = os.environ[\"API_KEY\"]\n",
                        }
                    },
                },
                "timeout_seconds": 5.0,
            }
        }
    }


class RemediateRequest(BaseModel):
    """Request body for POST /v1/remediate."""
    context: OperationContext
    violations: List[PolicyViolation] = Field(
        ..., description="Violations from a previous evaluation"
    )


class OverrideRequestBody(BaseModel):
    """Request body for POST /v1/overrides."""
    context: OperationContext
    violation: PolicyViolation
    justification: str = Field(..., description="Why the violation should be allowed")
    approver_id: Optional[str] = Field(default=None)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class PolicyListResponse(BaseModel):
    """Response for GET /v1/policies."""
    rules: List[PolicyRule]
    enabled: Dict[str, bool] = Field(
        default_factory=dict, description="Enabled flag per rule id"
    )


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    request_id: Optional[str] = Field(
        default=None, description="Request ID for debugging"
    )
    details: Dict[str, Any] = Field(default_factory=dict)
