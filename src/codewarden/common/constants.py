"""Centralized constants for CodeWarden system configuration."""


# ===== AUDIT & LOGGING =====
class AuditConstants:
    HASH_ALGORITHM = "sha256"
    ALLOWED_HASH_ALGORITHMS = ("sha256", "sha384", "sha512", "sha3_256", "sha3_512")
    GENESIS_PREVIOUS_HASH = ""
    REDACTION_MARKER = "[REDACTED]"
    SENSITIVE_KEY_PATTERNS = (
        "password",
        "secret",
        "token",
        "key",
        "authorization",
        "cookie",
        "session",
    )
    EVENT_ID_PREFIX = "evt_"
    LOG_FILENAME = "codewarden_audit.jsonl"
    STORAGE_RETRY_ATTEMPTS = 3
    STORAGE_RETRY_BACKOFF_SECONDS = 0.1
    STORAGE_RETRY_MAX_WAIT_SECONDS = 2.0


# ===== POLICY EVALUATION =====
class EvaluationConstants:
    DEFAULT_TIMEOUT_SECONDS = 10.0
    DEFAULT_MAX_WORKERS = 4
    PREDICATE_FAILURE_SEVERITY = "high"


# ===== POLICY REGISTRY =====
class RegistryConstants:
    MIN_NAME_LENGTH = 5
    MIN_DESCRIPTION_LENGTH = 20
    MIN_RATIONALE_LENGTH = 20
    RULE_ID_SEQUENCE_DIGITS = 3


# ===== OVERRIDES =====
class OverrideConstants:
    MIN_JUSTIFICATION_LENGTH = 20


# ===== DATA & QUERY LIMITS =====
class DataConstants:
    DEFAULT_QUERY_LIMIT = 100
    MAX_QUERY_LIMIT = 10000
