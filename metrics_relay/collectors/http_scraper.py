"""HTTP scraper for text metrics endpoints exposed by brokers and host agents."""

import asyncio
import time
import logging
from typing import Iterable, Optional

import httpx

from ..config.models import ScrapeConfig
from ..utils.status import ScrapeStatus
from ..utils.metrics import ScrapeResult
from .base import BadStatus, Unreachable
from .text_parser import extract_fields


class SourceScraper:
    """
    Fetches one text metrics endpoint and extracts numeric fields.

    The scraper never touches the metric registry. The HTTP client is shared
    across sources and cycles; every fetch is bounded by the scrape timeout.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: ScrapeConfig,
        logger: logging.Logger
    ):
        """
        Initialize scraper.

        Args:
            client: Shared async HTTP client
            config: Scrape port, path and timeout settings
            logger: Logger instance
        """
        self.client = client
        self.config = config
        self.timeout = config.timeout_seconds
        self.logger = logger.getChild(self.__class__.__name__)

    def build_url(self, address: str, path: Optional[str] = None, port: Optional[int] = None) -> str:
        """Build ``http://<address>:<port><path>`` using configured defaults."""
        if ":" in address and not address.startswith("["):
            # IPv6 literal
            address = f"[{address}]"
        return f"http://{address}:{port or self.config.port}{path or self.config.path}"

    async def scrape(
        self,
        address: str,
        path: Optional[str],
        fields: Iterable[str],
        port: Optional[int] = None,
        source_name: Optional[str] = None
    ) -> ScrapeResult:
        """
        Scrape a source and extract the requested fields.

        Args:
            address: Host name or IP of the source
            path: Endpoint path (configured default when None)
            fields: Field tokens to extract
            port: Port override (configured default when None)
            source_name: Name used in results and logs (address when None)

        Returns:
            ScrapeResult: Successful extraction; missing fields hold 0.0

        Raises:
            Unreachable: Transport failure or timeout
            BadStatus: Non-2xx response
        """
        url = self.build_url(address, path, port)
        source_name = source_name or address
        start_time = time.monotonic()

        self.logger.debug(f"Scraping {source_name} at {url}")
        body = await self._fetch(url)

        values, missing = extract_fields(body, fields)
        for field_name in missing:
            self.logger.warning(
                f"Field {field_name} missing or unparsable in response from {source_name}, defaulting to 0.0",
                extra={"source": source_name, "field": field_name}
            )

        return ScrapeResult(
            source_name=source_name,
            status=ScrapeStatus.OK,
            values=values,
            missing=missing,
            duration_ms=(time.monotonic() - start_time) * 1000
        )

    async def _fetch(self, url: str) -> str:
        """
        GET ``url`` and return its body, within the scrape timeout.

        The httpx timeout bounds each phase; wait_for bounds the whole request.
        """
        try:
            response = await asyncio.wait_for(
                self.client.get(url, timeout=self.timeout),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise Unreachable(url, TimeoutError(f"no response within {self.timeout}s")) from e
        except httpx.RequestError as e:
            raise Unreachable(url, e) from e

        if not response.is_success:
            raise BadStatus(url, response.status_code)

        return response.text
