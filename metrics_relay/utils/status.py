"""Status enumerations for sources, scrapes and the scheduler."""

from enum import Enum


class SourceRole(str, Enum):
    """Kind of remote source being scraped."""

    BROKER = "broker"
    HOST_AGENT = "host-agent"


class ScrapeStatus(Enum):
    """Outcome of a single source scrape."""

    OK = "ok"
    UNREACHABLE = "unreachable"
    BAD_STATUS = "bad_status"
    ERROR = "error"

    @property
    def is_success(self) -> bool:
        return self is ScrapeStatus.OK


class SchedulerState(Enum):
    """Lifecycle state of the relay scheduler."""

    RUNNING = "running"
    STOPPED = "stopped"
