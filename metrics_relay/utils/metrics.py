"""Result data structures for scrapes and collection cycles."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import time

from .status import ScrapeStatus


@dataclass
class ScrapeResult:
    """Outcome of scraping one source: extracted values or a failure reason."""

    source_name: str
    status: ScrapeStatus
    values: Dict[str, float] = field(default_factory=dict)
    missing: Tuple[str, ...] = ()
    error: Optional[str] = None
    duration_ms: float = 0.0
    timestamp: Optional[float] = None

    def __post_init__(self):
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = time.time()

    @property
    def ok(self) -> bool:
        return self.status.is_success


@dataclass
class CycleReport:
    """Summary of one collection cycle, used for logging only."""

    outcomes: List[ScrapeResult] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded

    @property
    def failed_sources(self) -> List[str]:
        return [outcome.source_name for outcome in self.outcomes if not outcome.ok]


@dataclass
class TickResult:
    """Outcome of one scheduler tick: the collection cycle plus the relay step."""

    report: CycleReport
    pushed: bool = False
    push_skipped: bool = False
