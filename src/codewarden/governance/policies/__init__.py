"""Policies module - Rule registry, evaluation and the built-in rule pack.

Rules are declarative values; evaluation is deterministic given the
registered predicates.
"""

from codewarden.governance.policies.builtin import BUILTIN_RULES, register_builtin_rules
from codewarden.governance.policies.engine import PolicyEngine
from codewarden.governance.policies.registry import PolicyRegistry, RegisteredRule

__all__ = [
    "BUILTIN_RULES",
    "PolicyEngine",
    "PolicyRegistry",
    "RegisteredRule",
    "register_builtin_rules",
]
