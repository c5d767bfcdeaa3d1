"""Shared pytest configuration and fixtures."""

import logging

import httpx
import pytest

from metrics_relay.config.loader import ConfigLoader
from metrics_relay.config.models import ScrapeConfig


@pytest.fixture
def logger():
    """Create logger for tests (propagates, so caplog sees records)."""
    return logging.getLogger("test")

@pytest.fixture
def raw_config():
    """Minimal configuration mapping with one broker and one host agent."""
    return {
        "sources": [
            {"name": "broker-1", "address": "10.0.0.1", "role": "broker"},
            {"name": "vm-1", "address": "10.0.0.2", "role": "host-agent"},
        ],
        "scrape": {"port": 9644, "path": "/metrics", "timeout_seconds": 1, "max_concurrency": 4},
        "gateway": {
            "url": "http://gateway:9091",
            "job": "test_job",
            "grouping_labels": {"instance": "test_instance"},
            "timeout_seconds": 1,
        },
        "schedule": {"interval_seconds": 15},
    }

@pytest.fixture
def config(raw_config):
    """Validated configuration built from raw_config."""
    return ConfigLoader.load_from_dict(raw_config)

@pytest.fixture
def scrape_config():
    return ScrapeConfig(port=9644, path="/metrics", timeout_seconds=1)

def make_transport(routes, calls=None):
    """
    Build an httpx.MockTransport answering by host.

    Args:
        routes: host -> (status_code, body) or an exception instance to raise
        calls: Optional list collecting every request seen
    """
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        route = routes.get(request.url.host)
        if route is None:
            raise httpx.ConnectError("Name or service not known", request=request)
        if isinstance(route, Exception):
            raise route
        status_code, body = route
        return httpx.Response(status_code, text=body)

    return httpx.MockTransport(handler)

@pytest.fixture
def transport_factory():
    return make_transport
