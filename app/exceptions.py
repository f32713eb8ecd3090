"""
Voxcribe — Exceptions

All Voxcribe-specific exceptions inherit from VoxcribeError. A degraded
(empty) transcript is a value, not an exception: see
TranscriptionResult.empty().
"""

from __future__ import annotations

from enum import Enum


class VoxcribeError(Exception):
    """Base exception for all Voxcribe errors."""

    pass


class UserInputError(VoxcribeError):
    """Missing upload, missing or unsupported language. Nothing is processed."""

    def __init__(self, message: str, remediation: str | None = None):
        self.message = message
        self.remediation = remediation
        super().__init__(message)


class ToolKind(str, Enum):
    missing = "missing"
    non_functional = "non_functional"
    deprecated_stub = "deprecated_stub"


class ToolUnavailable(VoxcribeError):
    """No usable candidate locally, globally, or after fresh provisioning."""

    def __init__(self, tool: str, kind: ToolKind, reason: str | None = None):
        self.tool = tool
        self.kind = kind
        self.reason = reason
        message = f"{tool}: {kind.value.replace('_', ' ')}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ProvisionFailed(VoxcribeError):
    """Every source and install strategy for a tool was exhausted."""

    def __init__(self, tool: str, attempts: list[str] | None = None):
        self.tool = tool
        self.attempts = attempts or []
        detail = "; ".join(self.attempts) if self.attempts else "no sources configured"
        super().__init__(f"Could not provision {tool}: {detail}")
