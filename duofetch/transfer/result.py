"""Per-file transfer outcomes."""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class Completion(Enum):
    """How a transfer decided it was done."""
    CLOSED = "closed"            # stream peer closed the connection
    INACTIVITY = "inactivity"    # no datagram within the inactivity window
    HARD_CAP = "hard_cap"        # datagram session hit its deadline


@dataclass
class TransferResult:
    """Outcome of retrieving one file."""
    name: str
    transport: str
    save_path: Optional[Path] = None
    size: int = 0
    elapsed_ms: float = 0.0
    completion: Optional[Completion] = None
    chunks: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'name': self.name,
            'transport': self.transport,
            'save_path': str(self.save_path) if self.save_path else None,
            'size': self.size,
            'elapsed_ms': round(self.elapsed_ms, 3),
            'completion': self.completion.value if self.completion else None,
            'chunks': self.chunks,
            'ok': self.ok,
            'error': self.error,
        }


class Stopwatch:
    """Wall-clock timer in milliseconds, started on creation."""

    def __init__(self):
        self._start = time.perf_counter()

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000


@dataclass
class BatchReport:
    """Results of a sequential batch, in request order."""
    transport: str
    results: list = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    @property
    def total_bytes(self) -> int:
        return sum(r.size for r in self.results if r.ok)

    @property
    def total_ms(self) -> float:
        return sum(r.elapsed_ms for r in self.results)

    def to_dict(self) -> dict:
        return {
            'transport': self.transport,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'total_bytes': self.total_bytes,
            'total_ms': round(self.total_ms, 3),
            'results': [r.to_dict() for r in self.results],
        }
