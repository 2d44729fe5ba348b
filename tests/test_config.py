import logging

from chat_gateway.config import configure_logging, get_settings


ENV_VARS = [
    "DEFAULT_MODEL",
    "DEFAULT_PROVIDER",
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "REPLICATE_API_TOKEN",
    "REQUEST_TIMEOUT",
    "HEARTBEAT_INTERVAL",
    "ALLOWED_ORIGINS",
    "SYSTEM_INSTRUCTION",
    "MAX_FILE_TOKENS",
    "MOCK_PROVIDERS",
    "LOG_LEVEL",
]


def test_settings_defaults(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.default_model == "gpt-5"
    assert settings.default_provider == "openai"
    assert settings.openai_api_key is None
    assert settings.openai_base_url == "https://api.openai.com/v1"
    assert settings.anthropic_api_key is None
    assert settings.request_timeout == 300.0
    assert settings.heartbeat_interval == 20.0
    assert settings.allowed_origins == ("http://localhost:3000",)
    assert settings.max_file_tokens == 50000
    assert settings.mock_providers is False
    assert settings.log_level == "INFO"


def test_settings_overrides(monkeypatch):
    monkeypatch.setenv("DEFAULT_MODEL", "claude-sonnet-4-5")
    monkeypatch.setenv("DEFAULT_PROVIDER", "anthropic")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:9000")
    monkeypatch.setenv("REQUEST_TIMEOUT", "12")
    monkeypatch.setenv("HEARTBEAT_INTERVAL", "0.5")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")
    monkeypatch.setenv("SYSTEM_INSTRUCTION", "Be brief.")
    monkeypatch.setenv("MAX_FILE_TOKENS", "100")
    monkeypatch.setenv("MOCK_PROVIDERS", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.default_model == "claude-sonnet-4-5"
    assert settings.default_provider == "anthropic"
    assert settings.openai_api_key == "sk-test"
    assert settings.openai_base_url == "http://localhost:9000"
    assert settings.request_timeout == 12.0
    assert settings.heartbeat_interval == 0.5
    assert settings.allowed_origins == ("https://a.example", "https://b.example")
    assert settings.system_instruction == "Be brief."
    assert settings.max_file_tokens == 100
    assert settings.mock_providers is True
    assert settings.log_level == "DEBUG"


def test_configure_logging_adds_single_handler():
    logger = logging.getLogger("chat_gateway")
    configure_logging("DEBUG")
    configure_logging("DEBUG")

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
