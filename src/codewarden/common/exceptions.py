"""Custom exceptions for CodeWarden.

Provides a hierarchy of exceptions for different error types.
All CodeWarden exceptions inherit from CodeWardenError.
"""

from typing import Any, Dict, List, Optional


class CodeWardenError(Exception):
    """Base exception for all CodeWarden errors.
    
    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """
    
    def __init__(
        self,
        message: str,
        code: str = "CODEWARDEN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(CodeWardenError):
    """Raised when configuration is invalid or missing."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class PolicyRegistryError(CodeWardenError):
    """Base class for rule registration failures."""
    
    def __init__(
        self,
        message: str,
        rule_id: Optional[str] = None,
        code: str = "REGISTRY_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule_id is not None:
            details["rule_id"] = rule_id
        self.rule_id = rule_id
        super().__init__(message, code=code, details=details)


class DuplicateRuleError(PolicyRegistryError):
    """Raised when a rule id is registered twice."""
    
    def __init__(self, rule_id: str):
        super().__init__(
            f"Policy rule '{rule_id}' is already registered",
            rule_id=rule_id,
            code="DUPLICATE_RULE",
        )


class InvalidRuleError(PolicyRegistryError):
    """Raised when a rule definition fails validation."""
    
    def __init__(self, rule_id: Optional[str], problems: List[str]):
        self.problems = problems
        super().__init__(
            f"Policy rule '{rule_id}' is invalid: " + "; ".join(problems),
            rule_id=rule_id,
            code="INVALID_RULE",
            details={"problems": problems},
        )


class RuleNotFoundError(PolicyRegistryError):
    """Raised when a rule id is unknown to the registry."""
    
    def __init__(self, rule_id: str):
        super().__init__(
            f"Policy rule '{rule_id}' is not registered",
            rule_id=rule_id,
            code="RULE_NOT_FOUND",
        )


class PolicyViolationError(CodeWardenError):
    """Raised by enforce() when an operation may not proceed.
    
    Carries the full evaluation result so callers can show which rule
    fired, why, and how to fix it.
    """
    
    def __init__(self, message: str, result: Any = None):
        self.result = result
        details: Dict[str, Any] = {}
        if result is not None:
            details["evaluation_id"] = result.evaluation_id
            details["violations"] = [
                v.model_dump(mode="json") for v in result.violations
            ]
        super().__init__(message, code="POLICY_VIOLATION", details=details)
    
    @property
    def violations(self) -> list:
        return list(self.result.violations) if self.result is not None else []


class AuditError(CodeWardenError):
    """Raised when audit logging fails."""
    
    def __init__(
        self,
        message: str,
        code: str = "AUDIT_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)


class AuditStoreError(AuditError):
    """Raised when an event could not be persisted.
    
    The calling operation must not proceed as if it had been audited.
    """
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="AUDIT_STORE_ERROR", details=details)


class AuditLogIntegrityError(AuditError):
    """Raised when the hash chain is found to be broken."""
    
    def __init__(self, message: str, broken_at: Optional[int] = None):
        self.broken_at = broken_at
        super().__init__(
            message,
            code="AUDIT_INTEGRITY_ERROR",
            details={"broken_at": broken_at},
        )


class OverrideStateError(CodeWardenError):
    """Raised on an invalid override state transition."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="OVERRIDE_STATE_ERROR", details=details)
