"""Pydantic configuration models for the metrics relay."""

import math
import socket
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..utils.status import SourceRole


# Field token -> instrument kind. Tokens double as instrument names.
FIELD_CATALOG: Dict[str, str] = {
    "message_throughput": "counter",
    "consumer_lag": "gauge",
    "partition_count": "gauge",
    "replica_count": "gauge",
    "cpu_usage": "gauge",
    "memory_usage": "gauge",
}

DEFAULT_ROLE_FIELDS: Dict[SourceRole, List[str]] = {
    SourceRole.BROKER: ["message_throughput"],
    SourceRole.HOST_AGENT: ["cpu_usage", "memory_usage"],
}


class SourceConfig(BaseModel):
    """A single scrape target: a broker node or a host agent."""
    name: str
    address: str
    role: SourceRole
    port: Optional[int] = Field(default=None, ge=1, le=65535)  # Falls back to scrape.port
    fields: Optional[List[str]] = None  # Falls back to the role defaults

    @field_validator('name', 'address')
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Reject empty identifiers."""
        if not v.strip():
            raise ValueError('must not be empty')
        return v.strip()

    @field_validator('fields')
    @classmethod
    def validate_fields(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Only catalogued fields can be scraped."""
        if v is None:
            return v
        unknown = [name for name in v if name not in FIELD_CATALOG]
        if unknown:
            raise ValueError(
                f"Unknown field(s) {', '.join(unknown)}; "
                f"expected any of {', '.join(FIELD_CATALOG)}"
            )
        if not v:
            raise ValueError('fields must not be empty')
        return list(dict.fromkeys(v))

    @property
    def scrape_fields(self) -> List[str]:
        return self.fields or DEFAULT_ROLE_FIELDS[self.role]


class ScrapeConfig(BaseModel):
    """How sources are scraped."""
    port: int = Field(default=9644, ge=1, le=65535)
    path: str = "/metrics"
    timeout_seconds: float = Field(default=5.0, gt=0)
    max_concurrency: int = Field(default=8, ge=1)

    @field_validator('path')
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Paths are absolute."""
        return v if v.startswith('/') else f"/{v}"


class GatewayConfig(BaseModel):
    """Pushgateway the aggregated snapshot is relayed to."""
    url: str = "http://localhost:9091"
    job: str = "redpanda_metrics"
    grouping_labels: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=5.0, gt=0)
    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @field_validator('job')
    @classmethod
    def validate_job(cls, v: str) -> str:
        if not v:
            raise ValueError('job must not be empty')
        return v

    @field_validator('username', 'password', mode='before')
    @classmethod
    def empty_as_none(cls, v):
        """Unset ${ENV} placeholders substitute to empty strings."""
        return v or None

    @model_validator(mode='after')
    def default_instance_label(self) -> 'GatewayConfig':
        """Group pushes by this host unless told otherwise."""
        if not self.grouping_labels.get('instance'):
            self.grouping_labels['instance'] = socket.gethostname()
        return self

    @property
    def auth(self):
        if self.username is None:
            return None
        return (self.username, self.password or "")


class PushBackoffConfig(BaseModel):
    """Optional exponential backoff on sustained gateway failure."""
    enabled: bool = False
    base_delay_seconds: float = Field(default=15.0, gt=0)
    max_delay_seconds: float = Field(default=300.0, gt=0)


class ScheduleConfig(BaseModel):
    """Relay cadence configuration."""
    interval_seconds: float = Field(default=15.0, gt=0)
    push_backoff: PushBackoffConfig = Field(default_factory=PushBackoffConfig)


class RelaySystemConfig(BaseModel):
    """Root configuration model for the metrics relay."""
    sources: List[SourceConfig] = Field(default_factory=list)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    namespace: str = ""

    @field_validator('sources')
    @classmethod
    def unique_source_names(cls, v: List[SourceConfig]) -> List[SourceConfig]:
        """Source names label instruments, so they must be unique."""
        seen = set()
        for source in v:
            if source.name in seen:
                raise ValueError(f"Duplicate source name: {source.name}")
            seen.add(source.name)
        return v

    @property
    def worst_case_tick_seconds(self) -> float:
        """Longest a tick can take when every scrape and the push time out."""
        rounds = math.ceil(len(self.sources) / self.scrape.max_concurrency)
        return rounds * self.scrape.timeout_seconds + self.gateway.timeout_seconds

    @model_validator(mode='after')
    def tick_fits_interval(self) -> 'RelaySystemConfig':
        """A tick must finish before the next one is due, or the scheduler skips it."""
        worst_case = self.worst_case_tick_seconds
        if worst_case >= self.schedule.interval_seconds:
            raise ValueError(
                f"Worst-case tick duration {worst_case:g}s "
                f"(scrape timeout x {math.ceil(len(self.sources) / self.scrape.max_concurrency)} round(s) "
                f"+ gateway timeout) must be shorter than interval_seconds "
                f"{self.schedule.interval_seconds:g}s"
            )
        return self
