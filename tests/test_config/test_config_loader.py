"""Tests for configuration loading and validation."""

import socket

import pytest
import yaml
from pydantic import ValidationError

from metrics_relay.config.loader import ConfigLoader
from metrics_relay.config.models import GatewayConfig, SourceConfig
from metrics_relay.utils.status import SourceRole


@pytest.fixture
def config_file(tmp_path, raw_config):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(raw_config))
    return path


class TestConfigLoader:
    """Test suite for ConfigLoader."""

    def test_load_from_file(self, config_file):
        config = ConfigLoader.load_from_file(str(config_file))

        assert [source.name for source in config.sources] == ["broker-1", "vm-1"]
        assert config.sources[0].role == SourceRole.BROKER
        assert config.gateway.job == "test_job"
        assert config.schedule.interval_seconds == 15

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader.load_from_file(str(tmp_path / "absent.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("sources: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            ConfigLoader.load_from_file(str(path))

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = ConfigLoader.load_from_file(str(path))

        assert config.sources == []
        assert config.schedule.interval_seconds == 15.0
        assert config.scrape.port == 9644
        assert config.gateway.url == "http://localhost:9091"
        assert config.gateway.job == "redpanda_metrics"
        assert config.schedule.push_backoff.enabled is False

    def test_env_substitution(self, monkeypatch, raw_config):
        monkeypatch.setenv("GATEWAY_USER", "relay")
        monkeypatch.setenv("GATEWAY_PASS", "secret")
        raw_config["gateway"]["username"] = "${GATEWAY_USER}"
        raw_config["gateway"]["password"] = "${GATEWAY_PASS}"

        config = ConfigLoader.load_from_dict(raw_config)

        assert config.gateway.auth == ("relay", "secret")

    def test_unset_env_credentials_become_none(self, monkeypatch, raw_config):
        monkeypatch.delenv("GATEWAY_USER", raising=False)
        raw_config["gateway"]["username"] = "${GATEWAY_USER}"

        config = ConfigLoader.load_from_dict(raw_config)

        assert config.gateway.username is None
        assert config.gateway.auth is None

    def test_substitution_in_lists(self, monkeypatch, raw_config):
        monkeypatch.setenv("BROKER_IP", "192.168.1.5")
        raw_config["sources"][0]["address"] = "${BROKER_IP}"

        config = ConfigLoader.load_from_dict(raw_config)

        assert config.sources[0].address == "192.168.1.5"

    def test_duplicate_source_names_rejected(self, raw_config):
        raw_config["sources"].append({"name": "vm-1", "address": "10.0.0.3", "role": "host-agent"})

        with pytest.raises(ValidationError):
            ConfigLoader.load_from_dict(raw_config)

    def test_default_timeouts_fit_default_interval(self):
        config = ConfigLoader.load_from_dict({
            "sources": [
                {"name": f"broker-{i}", "address": f"10.0.0.{i}", "role": "broker"}
                for i in range(8)
            ]
        })

        assert config.gateway.timeout_seconds == 5.0
        assert config.worst_case_tick_seconds == 10.0
        assert config.worst_case_tick_seconds < config.schedule.interval_seconds

    def test_timeouts_exceeding_interval_rejected(self, raw_config):
        raw_config["scrape"]["timeout_seconds"] = 5
        raw_config["gateway"]["timeout_seconds"] = 10
        raw_config["schedule"]["interval_seconds"] = 15

        with pytest.raises(ValidationError) as exc_info:
            ConfigLoader.load_from_dict(raw_config)

        assert "interval_seconds" in str(exc_info.value)

    def test_scrape_rounds_counted_against_interval(self, raw_config):
        # 2 sources, one at a time: 2 x 6s + 2s = 14s fits, a third source does not
        raw_config["scrape"]["max_concurrency"] = 1
        raw_config["scrape"]["timeout_seconds"] = 6
        raw_config["gateway"]["timeout_seconds"] = 2

        config = ConfigLoader.load_from_dict(raw_config)
        assert config.worst_case_tick_seconds == 14.0

        raw_config["sources"].append({"name": "vm-2", "address": "10.0.0.3", "role": "host-agent"})
        with pytest.raises(ValidationError):
            ConfigLoader.load_from_dict(raw_config)


class TestModels:
    """Test suite for individual configuration models."""

    def test_role_default_fields(self):
        broker = SourceConfig(name="b", address="a", role="broker")
        vm = SourceConfig(name="v", address="a", role="host-agent")

        assert broker.scrape_fields == ["message_throughput"]
        assert vm.scrape_fields == ["cpu_usage", "memory_usage"]

    def test_field_override(self):
        broker = SourceConfig(
            name="b", address="a", role="broker",
            fields=["message_throughput", "consumer_lag", "consumer_lag"]
        )

        assert broker.scrape_fields == ["message_throughput", "consumer_lag"]

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            SourceConfig(name="b", address="a", role="broker", fields=["disk_usage"])

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError):
            SourceConfig(name="b", address="a", role="database")

    def test_blank_address_rejected(self):
        with pytest.raises(ValidationError):
            SourceConfig(name="b", address="  ", role="broker")

    def test_gateway_url_scheme_required(self):
        with pytest.raises(ValidationError):
            GatewayConfig(url="localhost:9091")

    def test_gateway_default_instance_is_hostname(self):
        gateway = GatewayConfig()

        assert gateway.grouping_labels == {"instance": socket.gethostname()}

    def test_gateway_explicit_instance_kept(self):
        gateway = GatewayConfig(grouping_labels={"instance": "relay-01", "dc": "east"})

        assert gateway.grouping_labels == {"instance": "relay-01", "dc": "east"}

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            GatewayConfig(timeout_seconds=0)

    def test_gateway_empty_instance_falls_back_to_hostname(self, monkeypatch, raw_config):
        monkeypatch.delenv("RELAY_INSTANCE", raising=False)
        raw_config["gateway"]["grouping_labels"] = {"instance": "${RELAY_INSTANCE}"}

        config = ConfigLoader.load_from_dict(raw_config)

        assert config.gateway.grouping_labels["instance"] == socket.gethostname()
