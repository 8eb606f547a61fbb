"""Tests for the gateway configuration system."""

import pytest
import yaml

from smartcare.config import (
    DEFAULT_CONFIG_YAML,
    GatewayConfig,
    RealtimeAIConfig,
    load_config,
)


class TestGatewayConfig:

    def test_default_config(self):
        config = GatewayConfig()
        assert config.server.port == 3000
        assert config.server.media_path == "/media-stream"
        assert config.ai.voice == "echo"
        assert config.ai.model == "gpt-4o-realtime-preview-2024-10-01"
        assert config.ai.settle_delay_ms == 250
        assert config.extraction.model == "gpt-4o-mini"
        assert config.pipeline.manual_fallback is False
        assert config.store.backend == "memory"
        assert config.pipeline.webhook_url == ""
        assert config.ai.language == ""
        assert config.chat.idle_timeout_seconds == 1800.0

    def test_realtime_url_includes_model(self):
        ai = RealtimeAIConfig(model="gpt-test")
        assert ai.realtime_url == "wss://api.openai.com/v1/realtime?model=gpt-test"

    def test_from_dict_full(self):
        config = GatewayConfig.from_dict({
            "server": {"port": 8080},
            "ai": {"api_key": "sk-1", "voice": "alloy"},
            "pipeline": {"manual_fallback": True},
        })
        assert config.server.port == 8080
        assert config.ai.api_key == "sk-1"
        assert config.ai.voice == "alloy"
        assert config.pipeline.manual_fallback is True

    def test_webhook_kept_apart_from_public_url(self):
        config = GatewayConfig.from_dict({
            "webhook_url": "https://gateway.example.com",
            "pipeline": {"webhook_url": "https://hooks.example.com/tickets"},
        })
        assert config.server.public_url == "https://gateway.example.com"
        assert config.pipeline.webhook_url == "https://hooks.example.com/tickets"

    def test_from_dict_shorthand(self):
        config = GatewayConfig.from_dict({
            "port": 5050,
            "openai_api_key": "sk-2",
            "twilio_account_sid": "AC1",
            "twilio_auth_token": "tok",
            "twilio_phone_number": "+15550001111",
            "webhook_url": "https://abc.ngrok.app",
        })
        assert config.server.port == 5050
        assert config.ai.api_key == "sk-2"
        assert config.telephony.from_number == "+15550001111"
        assert config.server.public_url == "https://abc.ngrok.app"
        assert config.telephony_enabled is True

    def test_shorthand_merges_with_section(self):
        config = GatewayConfig.from_dict({"ai": {"voice": "shimmer"}, "openai_api_key": "sk-3"})
        assert config.ai.voice == "shimmer"
        assert config.ai.api_key == "sk-3"

    def test_telephony_disabled_without_credentials(self):
        assert GatewayConfig().telephony_enabled is False

    def test_load_config_from_instance(self):
        original = GatewayConfig()
        assert load_config(original) is original

    def test_load_config_rejects_unknown_type(self):
        with pytest.raises(TypeError):
            load_config(42)

    def test_from_yaml_expands_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_OPENAI_KEY", "sk-from-env")
        monkeypatch.setenv("TEST_FROM_NUMBER", "+15551112222")
        path = tmp_path / "gateway.yaml"
        path.write_text(
            "ai:\n"
            "  api_key: ${TEST_OPENAI_KEY}\n"
            "telephony:\n"
            "  from_number: ${TEST_FROM_NUMBER}\n"
            "  auth_token: ${TEST_UNSET_VARIABLE}\n"
        )
        config = GatewayConfig.from_yaml(path)
        assert config.ai.api_key == "sk-from-env"
        assert config.telephony.from_number == "+15551112222"
        assert config.telephony.auth_token == ""

    def test_env_nested_settings(self, monkeypatch):
        monkeypatch.setenv("SMARTCARE_AI__VOICE", "coral")
        monkeypatch.setenv("SMARTCARE_SERVER__PORT", "4000")
        config = GatewayConfig()
        assert config.ai.voice == "coral"
        assert config.server.port == 4000

    def test_default_yaml_is_valid(self):
        data = yaml.safe_load(DEFAULT_CONFIG_YAML)
        config = GatewayConfig.from_dict(data)
        assert config.server.port == 3000
        assert config.store.backend == "memory"
        assert config.ai.settle_delay_ms == 250
