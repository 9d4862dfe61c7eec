"""Built-in rule pack.

A small set of rules every CodeWarden deployment starts with. Each rule
is a declarative PolicyRule plus a pure check function, and optionally a
fix function that returns patched data without touching the context.
"""

import re
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

from codewarden.governance.policies.registry import PolicyRegistry
from codewarden.governance.schemas import (
    CheckResult,
    EnforcementMode,
    Finding,
    FixResult,
    OperationContext,
    PolicyCategory,
    PolicyRule,
    PolicyViolation,
    Severity,
)


PRODUCTION = "production"

# name = "literal" where the name looks like a credential
_SECRET_ASSIGNMENT = re.compile(
    r"""(?P<name>[A-Za-z0-9_]*(?:api[_-]?key|secret|token|passw(?:or)?d)[A-Za-z0-9_]*)"""
    r"""["']?\s*[:=]\s*(?P<quote>["'])(?P<value>(?!\$\{)[^"'\n]{8,})(?P=quote)""",
    re.IGNORECASE,
)

# Well-known live credential formats, whatever they are assigned to
_KNOWN_KEY_PREFIXES = re.compile(
    r"""(?:sk_live_[0-9A-Za-z]{8,}|AKIA[0-9A-Z]{16}|ghp_[0-9A-Za-z]{36})"""
)

_DEBUG_STATEMENT = re.compile(
    r"""^\s*(?P<kind>print(?=\()|breakpoint(?=\(\))|import\s+i?pdb\b|i?pdb\.set_trace(?=\(\))"""
    r"""|console\.(?:log|debug)(?=\()|debugger(?=\s*;?\s*$))"""
)


# =============================================================================
# SEC-001: No hardcoded secrets
# =============================================================================

SEC_001 = PolicyRule(
    id="SEC-001",
    name="No hardcoded secrets",
    category=PolicyCategory.SECURITY,
    description="Source code must not contain literal credentials such as API keys or passwords.",
    rationale="Secrets committed to source control leak to everyone with read access and cannot be revoked from history.",
    severity=Severity.CRITICAL,
    enforcement=EnforcementMode.BLOCK,
    applies_to=["code.*"],
    can_auto_fix=True,
    guidance="Read the value from an environment variable or a secret manager.",
    tags=["security", "secrets"],
)


def _find_secrets(path: str, text: str) -> List[Tuple[int, str]]:
    """(line number, message) for every line holding a literal secret."""
    found = []
    for number, line in enumerate(text.splitlines(), start=1):
        match = _SECRET_ASSIGNMENT.search(line)
        if match:
            found.append((number, f"Hardcoded secret assigned to '{match.group('name')}' in {path}"))
        elif _KNOWN_KEY_PREFIXES.search(line):
            found.append((number, f"Credential with a known live key format in {path}"))
    return found


def check_no_hardcoded_secrets(context: OperationContext) -> CheckResult:
    findings = [
        Finding(message=message, file=path, line=number, hint=SEC_001.guidance)
        for path, text in sorted(context.files.items())
        for number, message in _find_secrets(path, text)
    ]
    return CheckResult(passed=not findings, findings=findings)


def _env_reference(path: str, name: str) -> str:
    env_name = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name).upper().replace("-", "_")
    if PurePosixPath(path).suffix == ".py":
        return f'os.environ["{env_name}"]'
    if PurePosixPath(path).suffix in (".js", ".ts", ".jsx", ".tsx"):
        return f"process.env.{env_name}"
    return f'"${{{env_name}}}"'


def _rewrite_secret_line(path: str, line: str) -> str:
    return _SECRET_ASSIGNMENT.sub(
        lambda m: m.group(0)[: m.start("quote") - m.start(0)]
        + _env_reference(path, m.group("name")),
        line,
    )


def fix_hardcoded_secrets(context: OperationContext, violation: PolicyViolation) -> FixResult:
    """Replace literal assignments with environment lookups."""
    target_file = violation.location.file if violation.location else None
    target_line = violation.location.line if violation.location else None

    patched: Dict[str, str] = {}
    for path, text in context.files.items():
        if target_file is not None and path != target_file:
            continue
        lines = text.splitlines(keepends=True)
        changed = False
        for index, line in enumerate(lines):
            if target_line is not None and index + 1 != target_line:
                continue
            rewritten = _rewrite_secret_line(path, line)
            if rewritten != line:
                lines[index] = rewritten
                changed = True
        if not changed:
            continue
        new_text = "".join(lines)
        if path.endswith(".py") and not re.search(r"^import os\b", new_text, re.MULTILINE):
            new_text = "import os\n" + new_text
        patched[path] = new_text

    if not patched:
        return FixResult(
            success=False,
            message="No literal assignment to rewrite; the credential must be removed by hand",
        )
    return FixResult(
        success=True,
        message=f"Moved secrets to environment lookups in {len(patched)} file(s)",
        changes={"files": patched},
    )


# =============================================================================
# QUAL-001: No debug statements
# =============================================================================

QUAL_001 = PolicyRule(
    id="QUAL-001",
    name="No debug statements",
    category=PolicyCategory.QUALITY,
    description="Committed code should not contain print debugging or debugger breakpoints.",
    rationale="Debug output leaks internal state into logs and breakpoints hang production processes.",
    severity=Severity.LOW,
    enforcement=EnforcementMode.WARN,
    applies_to=["code.*"],
    can_auto_fix=True,
    guidance="Use the logging module instead of print, and remove breakpoints.",
    tags=["quality"],
)


def _find_debug_statements(text: str) -> List[Tuple[int, str]]:
    """(line number, statement kind) for every debug line.

    Only the kind is reported. The rest of the line may hold a secret.
    """
    found = []
    for number, line in enumerate(text.splitlines(), start=1):
        match = _DEBUG_STATEMENT.match(line)
        if match:
            found.append((number, " ".join(match.group("kind").split())))
    return found


def check_no_debug_statements(context: OperationContext) -> CheckResult:
    findings = [
        Finding(message=f"Debug statement '{kind}' in {path}:{number}", file=path, line=number)
        for path, text in sorted(context.files.items())
        for number, kind in _find_debug_statements(text)
    ]
    return CheckResult(passed=not findings, findings=findings)


def fix_debug_statements(context: OperationContext, violation: PolicyViolation) -> FixResult:
    """Strip debug lines from the affected files."""
    target_file = violation.location.file if violation.location else None
    patched: Dict[str, str] = {}
    removed = 0
    for path, text in context.files.items():
        if target_file is not None and path != target_file:
            continue
        lines = text.splitlines(keepends=True)
        kept = [line for line in lines if not _DEBUG_STATEMENT.match(line)]
        if len(kept) != len(lines):
            removed += len(lines) - len(kept)
            patched[path] = "".join(kept)

    if not patched:
        return FixResult(success=False, message="No debug statements found")
    return FixResult(
        success=True,
        message=f"Removed {removed} debug line(s)",
        changes={"files": patched},
    )


# =============================================================================
# DEP-001: Production deployments require passing tests
# =============================================================================

DEP_001 = PolicyRule(
    id="DEP-001",
    name="Production deployments require passing tests",
    category=PolicyCategory.DEPLOYMENT,
    description="A deployment to production may only proceed when the test suite has passed.",
    rationale="Untested builds are the most common cause of production incidents.",
    severity=Severity.CRITICAL,
    enforcement=EnforcementMode.BLOCK,
    applies_to=["deployment.*"],
    guidance="Run the test suite and redeploy once it passes.",
    tags=["deployment"],
)


def _target_environment(context: OperationContext) -> Optional[str]:
    deployment = context.deployment or {}
    environment = deployment.get("environment")
    if environment is None and context.operation.startswith("deployment."):
        environment = context.operation.split(".", 1)[1]
    return str(environment).lower() if environment is not None else None


def check_tests_passed(context: OperationContext) -> CheckResult:
    if _target_environment(context) != PRODUCTION:
        return CheckResult.ok()
    deployment = context.deployment or {}
    if deployment.get("tests_passed") is True:
        return CheckResult.ok()
    return CheckResult.fail(
        "Production deployment without a passing test run",
        hint=DEP_001.guidance,
    )


# =============================================================================
# CONF-001: Debug disabled in production configuration
# =============================================================================

CONF_001 = PolicyRule(
    id="CONF-001",
    name="Debug disabled in production",
    category=PolicyCategory.CONFIGURATION,
    description="Production configuration must not enable debug mode.",
    rationale="Debug mode exposes stack traces and internal settings to end users.",
    severity=Severity.MEDIUM,
    enforcement=EnforcementMode.WARN,
    applies_to=["config.*", "deployment.*"],
    can_auto_fix=True,
    guidance="Set debug to false for production.",
    tags=["configuration"],
)


def _configuration(context: OperationContext) -> Dict[str, Any]:
    if context.configuration is not None:
        return context.configuration
    return (context.deployment or {}).get("configuration") or {}


def _is_production_config(context: OperationContext, configuration: Dict[str, Any]) -> bool:
    environment = configuration.get("environment") or _target_environment(context)
    return str(environment).lower() == PRODUCTION


def check_debug_disabled(context: OperationContext) -> CheckResult:
    configuration = _configuration(context)
    if not _is_production_config(context, configuration):
        return CheckResult.ok()
    if configuration.get("debug"):
        return CheckResult.fail("Debug mode is enabled in production configuration")
    return CheckResult.ok()


def fix_debug_disabled(context: OperationContext, violation: PolicyViolation) -> FixResult:
    configuration = _configuration(context)
    if not configuration.get("debug"):
        return FixResult(success=False, message="Debug is already disabled")
    return FixResult(
        success=True,
        message="Set debug to false",
        changes={"configuration": {**configuration, "debug": False}},
    )


BUILTIN_RULES = [
    (SEC_001, check_no_hardcoded_secrets, fix_hardcoded_secrets),
    (QUAL_001, check_no_debug_statements, fix_debug_statements),
    (DEP_001, check_tests_passed, None),
    (CONF_001, check_debug_disabled, fix_debug_disabled),
]


def register_builtin_rules(registry: PolicyRegistry) -> List[PolicyRule]:
    """Register every built-in rule that is not registered yet."""
    return [
        registry.register(rule, check, fix)
        for rule, check, fix in BUILTIN_RULES
        if not registry.contains(rule.id)
    ]
