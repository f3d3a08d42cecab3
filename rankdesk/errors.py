"""Error taxonomy and batch result reporting."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class RankdeskError(Exception):
    """Base class for all rankdesk errors."""


class ValidationError(RankdeskError):
    """Malformed or missing input."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(RankdeskError):
    """A record with the same unique key was created concurrently."""


class UpstreamUnavailable(RankdeskError):
    """A ranking provider or the storage layer failed."""

    def __init__(self, message: str, source: str = "upstream"):
        super().__init__(message)
        self.source = source


@dataclass
class BatchResult:
    """Outcome of a batch operation.

    Failures are counted in full, but only the first ``max_errors`` messages
    are kept.
    """
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    items: List[Dict[str, Any]] = field(default_factory=list)
    max_errors: int = 10

    def add_success(self, item: Optional[Dict[str, Any]] = None):
        self.succeeded += 1
        if item is not None:
            self.items.append(item)

    def add_failure(self, message: str, item: Optional[Dict[str, Any]] = None):
        self.failed += 1
        self._note(message)
        if item is not None:
            self.items.append(item)

    def add_skip(self, message: Optional[str] = None):
        self.skipped += 1
        if message:
            self._note(message)

    def _note(self, message: str):
        if len(self.errors) < self.max_errors:
            self.errors.append(message)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "items": list(self.items),
        }
