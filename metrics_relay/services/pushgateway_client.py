"""Pushgateway client relaying registry snapshots to the ingestion gateway."""

import asyncio
import base64
import logging
from typing import Mapping, Optional, Tuple
from urllib.parse import quote_plus

import httpx
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..config.models import GatewayConfig
from .registry import Snapshot


class PushError(Exception):
    """Snapshot could not be delivered to the gateway."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _escape_grouping_key(key: str, value: str) -> Tuple[str, str]:
    """Encode one grouping label as a Pushgateway path segment pair."""
    if value == "":
        # Empty values must be base64 encoded
        return f"{key}@base64", "="
    if "/" in value or " " in value:
        encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("utf-8")
        return f"{key}@base64", encoded
    return key, quote_plus(value)


def build_push_url(gateway_url: str, job: str, grouping_labels: Mapping[str, str]) -> str:
    """Build ``<gateway>/metrics/job/<job>/<label>/<value>...`` with labels sorted by name."""
    segments = ["/".join(_escape_grouping_key("job", job))]
    for key, value in sorted(grouping_labels.items()):
        segments.append("/".join(_escape_grouping_key(str(key), str(value))))
    return f"{gateway_url.rstrip('/')}/metrics/{'/'.join(segments)}"


class PushgatewayClient:
    """
    Pushes snapshots to a Prometheus Pushgateway.

    Uses PUT, so every push replaces whatever the gateway holds for the
    job/grouping key. Credentials are passed through as HTTP basic auth.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: GatewayConfig,
        logger: logging.Logger = None
    ):
        """
        Initialize Pushgateway client.

        Args:
            client: Shared async HTTP client
            config: Gateway address, job, grouping labels and credentials
            logger: Optional logger instance
        """
        self.client = client
        self.config = config
        self.timeout = config.timeout_seconds
        self.logger = (logger or logging.getLogger(__name__)).getChild(self.__class__.__name__)

    async def push(self, snapshot: Snapshot) -> None:
        """
        Serialize and PUT a snapshot to the gateway.

        Args:
            snapshot: Registry snapshot carrying job and grouping labels

        Raises:
            PushError: On serialization, network, timeout or non-2xx failure
        """
        url = build_push_url(self.config.url, snapshot.job, snapshot.grouping_labels)

        try:
            payload = generate_latest(snapshot)
        except Exception as e:
            raise PushError(f"Failed to serialize snapshot: {e}") from e

        try:
            response = await asyncio.wait_for(
                self.client.put(
                    url,
                    content=payload,
                    headers={"Content-Type": CONTENT_TYPE_LATEST},
                    auth=self.config.auth,
                    timeout=self.timeout
                ),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise PushError(f"Push to {url} timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            raise PushError(f"Push to {url} failed: {e}") from e

        if not response.is_success:
            raise PushError(
                f"Gateway rejected push to {url}: HTTP {response.status_code}",
                status_code=response.status_code
            )

    async def send(self, snapshot: Snapshot) -> bool:
        """
        Push a snapshot, logging instead of raising on failure.

        Returns:
            bool: True if the gateway accepted the snapshot, False otherwise
        """
        try:
            await self.push(snapshot)
        except PushError as e:
            self.logger.error(
                f"Failed to push metrics: {e}",
                extra={"job": snapshot.job, "status_code": e.status_code}
            )
            return False

        self.logger.info(
            f"Metrics pushed to {self.config.url}",
            extra={"job": snapshot.job, "grouping_labels": dict(snapshot.grouping_labels)}
        )
        return True
