"""Unit tests for BridgeConfig validation and loading."""

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from reply_bridge.config import BridgeConfig

URL = "https://trx.example.com/webhook"


class TestBridgeConfigDefaults:
    """Test default configuration values."""

    def test_default_values(self) -> None:
        config = BridgeConfig(webhook_url=URL)

        assert config.webhook_url == URL
        assert config.webhook_timeout_seconds == 10.0
        assert config.webhook_retry_count == 3
        assert config.webhook_backoff_base_seconds == 1.0
        assert config.tracking_ttl_seconds == 86400
        assert config.sweep_interval_seconds == 3600
        assert config.webhook_whitelist == []
        assert config.storage_backend == "memory"
        assert config.tracking_db_path == "./db/tracking.db"
        assert config.log_level == "INFO"
        assert config.json_logs is True
        assert config.shutdown_timeout_seconds == 30.0

    def test_config_is_frozen(self) -> None:
        config = BridgeConfig(webhook_url=URL)

        with pytest.raises(ValidationError):
            config.webhook_retry_count = 5  # type: ignore[misc]


class TestWebhookUrlValidation:
    def test_missing_url_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig()  # type: ignore[call-arg]

    def test_blank_url_rejected(self) -> None:
        with pytest.raises(ValidationError, match="webhook_url is required"):
            BridgeConfig(webhook_url="   ")

    def test_non_http_url_rejected(self) -> None:
        with pytest.raises(ValidationError, match="http"):
            BridgeConfig(webhook_url="ftp://example.com/hook")

    def test_url_is_stripped(self) -> None:
        assert BridgeConfig(webhook_url=f"  {URL} ").webhook_url == URL


class TestRangeValidation:
    @pytest.mark.parametrize("value", [0, 300.5, -1])
    def test_timeout_out_of_range(self, value: float) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(webhook_url=URL, webhook_timeout_seconds=value)

    @pytest.mark.parametrize("value", [-1, 11])
    def test_retry_count_out_of_range(self, value: int) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(webhook_url=URL, webhook_retry_count=value)

    def test_zero_retries_allowed(self) -> None:
        assert BridgeConfig(webhook_url=URL, webhook_retry_count=0).webhook_retry_count == 0

    @pytest.mark.parametrize("value", [0, 604801])
    def test_ttl_out_of_range(self, value: int) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(webhook_url=URL, tracking_ttl_seconds=value)

    @pytest.mark.parametrize(
        "field", ["webhook_backoff_base_seconds", "shutdown_timeout_seconds"]
    )
    def test_non_positive_seconds_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(webhook_url=URL, **{field: 0})

    def test_sweep_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(webhook_url=URL, sweep_interval_seconds=0)

    def test_unknown_storage_backend_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(webhook_url=URL, storage_backend="redis")  # type: ignore[arg-type]

    def test_log_level_normalized(self) -> None:
        assert BridgeConfig(webhook_url=URL, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log level"):
            BridgeConfig(webhook_url=URL, log_level="VERBOSE")


class TestWhitelistParsing:
    def test_comma_separated_string(self) -> None:
        config = BridgeConfig(webhook_url=URL, webhook_whitelist=" a@g.us, ,b@g.us,")

        assert config.webhook_whitelist == ["a@g.us", "b@g.us"]

    def test_list_is_trimmed(self) -> None:
        config = BridgeConfig(webhook_url=URL, webhook_whitelist=[" a@g.us ", ""])

        assert config.webhook_whitelist == ["a@g.us"]

    def test_none_means_empty(self) -> None:
        assert BridgeConfig(webhook_url=URL, webhook_whitelist=None).webhook_whitelist == []

    def test_invalid_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig(webhook_url=URL, webhook_whitelist=42)  # type: ignore[arg-type]

    @given(
        addresses=st.lists(
            st.text(alphabet="0123456789abcdef@.", min_size=1, max_size=20).filter(
                lambda s: s.strip()
            ),
            max_size=5,
        )
    )
    def test_joined_string_round_trips(self, addresses: list[str]) -> None:
        config = BridgeConfig(webhook_url=URL, webhook_whitelist=",".join(addresses))

        assert config.webhook_whitelist == addresses


class TestConfigFromEnv:
    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BRIDGE_WEBHOOK_URL", URL)

        config = BridgeConfig.from_env()

        assert config.webhook_url == URL
        assert config.tracking_ttl_seconds == 86400

    def test_from_env_all_fields(self, monkeypatch: pytest.MonkeyPatch) -> None:
        env = {
            "BRIDGE_WEBHOOK_URL": URL,
            "BRIDGE_WEBHOOK_TIMEOUT_SECONDS": "5.5",
            "BRIDGE_WEBHOOK_RETRY_COUNT": "0",
            "BRIDGE_WEBHOOK_BACKOFF_BASE_SECONDS": "0.5",
            "BRIDGE_TRACKING_TTL_SECONDS": "3600",
            "BRIDGE_SWEEP_INTERVAL_SECONDS": "60",
            "BRIDGE_WEBHOOK_WHITELIST": "628111@s.whatsapp.net, 1203630@g.us",
            "BRIDGE_STORAGE_BACKEND": "sqlite",
            "BRIDGE_TRACKING_DB_PATH": "/tmp/tracking.db",
            "BRIDGE_LOG_LEVEL": "warning",
            "BRIDGE_JSON_LOGS": "false",
            "BRIDGE_SHUTDOWN_TIMEOUT_SECONDS": "10",
        }
        for key, value in env.items():
            monkeypatch.setenv(key, value)

        config = BridgeConfig.from_env()

        assert config.webhook_timeout_seconds == 5.5
        assert config.webhook_retry_count == 0
        assert config.webhook_backoff_base_seconds == 0.5
        assert config.tracking_ttl_seconds == 3600
        assert config.sweep_interval_seconds == 60
        assert config.webhook_whitelist == ["628111@s.whatsapp.net", "1203630@g.us"]
        assert config.storage_backend == "sqlite"
        assert config.tracking_db_path == "/tmp/tracking.db"
        assert config.log_level == "WARNING"
        assert config.json_logs is False
        assert config.shutdown_timeout_seconds == 10.0

    @pytest.mark.parametrize("raw", ["1", "true", "YES", "on"])
    def test_from_env_truthy_bools(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv("BRIDGE_WEBHOOK_URL", URL)
        monkeypatch.setenv("BRIDGE_JSON_LOGS", raw)

        assert BridgeConfig.from_env().json_logs is True

    def test_from_env_custom_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RB_WEBHOOK_URL", URL)
        monkeypatch.setenv("RB_WEBHOOK_RETRY_COUNT", "1")

        assert BridgeConfig.from_env(prefix="RB_").webhook_retry_count == 1

    def test_from_env_missing_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BRIDGE_WEBHOOK_URL", raising=False)

        with pytest.raises(ValidationError):
            BridgeConfig.from_env()

    def test_from_env_bad_integer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BRIDGE_WEBHOOK_URL", URL)
        monkeypatch.setenv("BRIDGE_WEBHOOK_RETRY_COUNT", "three")

        with pytest.raises(ValueError):
            BridgeConfig.from_env()


class TestConfigFromDict:
    def test_from_dict(self) -> None:
        config = BridgeConfig.from_dict({"webhook_url": URL, "tracking_ttl_seconds": 60})

        assert config.tracking_ttl_seconds == 60

    def test_from_dict_invalid(self) -> None:
        with pytest.raises(ValidationError):
            BridgeConfig.from_dict({"webhook_url": URL, "webhook_retry_count": 99})
