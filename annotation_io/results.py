"""
Result and error reporting for annotation I/O operations.
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, TypeVar

from annotation_io.models import ImageAnnotationData, ImageMetaData


class OperationType(Enum):
    IMPORT = "annotation import"
    SAVE = "annotation saving"
    METADATA_LOAD = "image metadata loading"


@dataclass(frozen=True)
class IOErrorEntry:
    """One problem, attributed to the file it occurred in."""
    file_name: str
    message: str


@dataclass
class IOResult:
    """Outcome of a batch operation."""
    operation: OperationType
    success_count: int
    errors: list[IOErrorEntry] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def summary(self) -> str:
        """Return a human-readable summary."""
        lines = [
            f"{self.operation.value.capitalize()}: {self.success_count} succeeded, "
            f"{self.error_count} error(s) in {self.elapsed_ms} ms",
        ]
        for entry in self.errors:
            lines.append(f"  {entry.file_name}: {entry.message}")
        return "\n".join(lines)


@dataclass
class ImportResult(IOResult):
    """Import outcome carrying the parsed annotations."""
    data: ImageAnnotationData = field(default_factory=ImageAnnotationData.empty)

    @property
    def annotations(self):
        return self.data.annotations


@dataclass
class MetadataLoadResult(IOResult):
    """Image metadata loading outcome."""
    metadata: dict[str, ImageMetaData] = field(default_factory=dict)

    @property
    def valid_files(self) -> list[str]:
        return sorted(self.metadata.keys())


class ErrorCollector:
    """Append-only error list shared between worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: list[IOErrorEntry] = []

    def add(self, file_name: str, message: str) -> None:
        with self._lock:
            self._entries.append(IOErrorEntry(file_name, message))

    def entries(self) -> list[IOErrorEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


R = TypeVar("R", bound=IOResult)


def timed(fn: Callable[..., R], *args, **kwargs) -> R:
    """Run ``fn`` and store its wall-clock duration on the returned result."""
    start = time.perf_counter()
    result = fn(*args, **kwargs)
    result.elapsed_ms = int((time.perf_counter() - start) * 1000)
    return result
