"""CodeWarden - Policy enforcement and tamper-evident audit for AI coding assistants."""

__version__ = "0.1.0"
__author__ = "CodeWarden Team"

from codewarden.governance.schemas import (
    EvaluationResult,
    OperationContext,
    PolicyRule,
    Severity,
)

__all__ = [
    "EvaluationResult",
    "OperationContext",
    "PolicyRule",
    "Severity",
]
