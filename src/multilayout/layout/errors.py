"""Error taxonomy for layout failures."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class LayoutErrorType(Enum):
    """Kinds of fatal layout failure."""

    INVALID_INPUT = "INVALID_INPUT"
    UNSUPPORTED_GRAPH = "UNSUPPORTED_GRAPH"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    ALGORITHM_FAILURE = "ALGORITHM_FAILURE"
    PERFORMANCE_TIMEOUT = "PERFORMANCE_TIMEOUT"
    MEMORY_EXCEEDED = "MEMORY_EXCEEDED"


@dataclass
class ErrorContext:
    """Graph size and wall-clock time at which an error was raised."""

    node_count: int = 0
    edge_count: int = 0
    timestamp: float = field(default_factory=time.time)


class LayoutError(Exception):
    """A fatal layout failure with its category and remediation hints."""

    def __init__(
        self,
        message: str,
        error_type: LayoutErrorType,
        algorithm: str | None = None,
        context: ErrorContext | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.algorithm = algorithm
        self.context = context or ErrorContext()
        self.suggestions = list(suggestions or [])

    def __str__(self) -> str:
        return f"[{self.error_type.value}] {self.message}"
