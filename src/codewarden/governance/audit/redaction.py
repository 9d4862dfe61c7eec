"""Sensitive value redaction.

Runs once, before an event is hashed and stored, so the chain never
contains a secret in any form.
"""

import json
from typing import Any, Iterable, Sequence

from codewarden.common.constants import AuditConstants


class Redactor:
    """Replaces values whose key looks sensitive with a marker.

    Matching is a case-insensitive substring test against each pattern,
    applied recursively through nested mappings and lists.
    """

    def __init__(
        self,
        patterns: Iterable[str] = AuditConstants.SENSITIVE_KEY_PATTERNS,
        marker: str = AuditConstants.REDACTION_MARKER,
    ):
        self.patterns: Sequence[str] = tuple(p.lower() for p in patterns)
        self.marker = marker

    def is_sensitive(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(pattern in lowered for pattern in self.patterns)

    def redact(self, value: Any) -> Any:
        """Return a redacted, JSON-safe copy of value."""
        return self._walk(_json_safe(value))

    def _walk(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: self.marker if self.is_sensitive(key) else self._walk(item)
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self._walk(item) for item in value]
        return value


def _json_safe(value: Any) -> Any:
    # Round trip through JSON so hashing sees exactly what gets persisted
    return json.loads(json.dumps(value, default=str))
