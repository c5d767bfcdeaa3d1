"""Metric registry owning every instrument the relay updates and pushes."""

import time
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge
from prometheus_client.metrics_core import Metric

from ..config.models import FIELD_CATALOG, SourceConfig
from ..utils.metrics import ScrapeResult


FIELD_DESCRIPTIONS = {
    "message_throughput": "Message throughput rate",
    "consumer_lag": "Consumer group lag",
    "partition_count": "Number of partitions",
    "replica_count": "Number of replicas",
    "cpu_usage": "CPU usage percentage",
    "memory_usage": "Memory usage percentage",
}


class InstrumentRegistrationError(Exception):
    """Instruments could not be created or registered at startup."""


@dataclass(frozen=True)
class Snapshot:
    """Immutable point-in-time copy of all instrument values plus push identity."""

    job: str
    grouping_labels: Mapping[str, str]
    families: Tuple[Metric, ...]
    taken_at: float

    def collect(self) -> Iterator[Metric]:
        """Collector protocol, so exposition encoders accept a snapshot directly."""
        return iter(self.families)

    def sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Return the value of one sample, or None if the snapshot holds no such sample."""
        labels = labels or {}
        for family in self.families:
            for sample in family.samples:
                if sample.name == name and sample.labels == labels:
                    return sample.value
        return None


class MetricRegistry:
    """
    Owns the instrument set for a fixed list of sources.

    Every instrument and every per-source labelled child is created here, once.
    Scraped-value instruments follow last-known-value semantics: a failed
    scrape leaves them untouched. Counters only ever increase.
    prometheus_client guards each value with its own lock, so concurrent
    writers to different instruments never contend.
    """

    def __init__(
        self,
        sources: Iterable[SourceConfig],
        namespace: str = "",
        logger: Optional[logging.Logger] = None
    ):
        """
        Create and register all instruments.

        Args:
            sources: Static list of configured sources
            namespace: Optional prefix for every instrument name
            logger: Optional logger instance

        Raises:
            InstrumentRegistrationError: If an instrument cannot be registered
        """
        self.logger = (logger or logging.getLogger(__name__)).getChild(self.__class__.__name__)
        self.namespace = namespace
        self.registry = CollectorRegistry()
        self.sources = list(sources)

        self._children: Dict[Tuple[str, str], object] = {}
        self._up: Dict[str, Gauge] = {}
        self._last_success: Dict[str, Gauge] = {}

        try:
            self._register_instruments()
        except ValueError as e:
            raise InstrumentRegistrationError(f"Failed to register instruments: {e}") from e

        self.logger.info(
            f"Registered instruments for {len(self.sources)} source(s)",
            extra={"instrument_count": len(self._children) + 2 * len(self._up)}
        )

    def _register_instruments(self) -> None:
        used_fields = [
            name for name in FIELD_CATALOG
            if any(name in source.scrape_fields for source in self.sources)
        ]

        instruments = {}
        for name in used_fields:
            metric_type = Counter if FIELD_CATALOG[name] == "counter" else Gauge
            instruments[name] = metric_type(
                name,
                FIELD_DESCRIPTIONS[name],
                ["source"],
                namespace=self.namespace,
                registry=self.registry
            )

        up = Gauge(
            "source_up",
            "Source availability status (1 if the last scrape succeeded)",
            ["source", "role"],
            namespace=self.namespace,
            registry=self.registry
        )
        last_success = Gauge(
            "source_last_success_timestamp_seconds",
            "Unix time of the last successful scrape",
            ["source", "role"],
            namespace=self.namespace,
            registry=self.registry
        )

        for source in self.sources:
            for name in source.scrape_fields:
                self._children[(name, source.name)] = instruments[name].labels(source=source.name)
            role = source.role.value
            self._up[source.name] = up.labels(source=source.name, role=role)
            self._last_success[source.name] = last_success.labels(source=source.name, role=role)

    def apply(self, source: SourceConfig, result: ScrapeResult) -> None:
        """
        Apply one scrape outcome to the instruments of ``source``.

        Counters are incremented by the extracted value, gauges are set to it.
        A failed outcome only flips the availability gauge.
        """
        up = self._up[source.name]
        if not result.ok:
            up.set(0)
            return

        for name, value in result.values.items():
            child = self._children.get((name, source.name))
            if child is None:
                self.logger.warning(f"No instrument {name} registered for {source.name}")
                continue

            if FIELD_CATALOG[name] == "counter":
                if value < 0:
                    self.logger.warning(
                        f"Ignoring negative delta {value} for counter {name} from {source.name}"
                    )
                    continue
                child.inc(value)
            else:
                child.set(value)

        up.set(1)
        self._last_success[source.name].set(result.timestamp)

    def snapshot(self, job: str, grouping_labels: Mapping[str, str]) -> Snapshot:
        """Copy all current instrument values into an immutable Snapshot."""
        return Snapshot(
            job=job,
            grouping_labels=MappingProxyType(dict(grouping_labels)),
            families=tuple(self.registry.collect()),
            taken_at=time.time()
        )

    def value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Current value of one exposed sample, e.g. ``message_throughput_total``."""
        return self.registry.get_sample_value(name, labels or {})
