from adgen.config import (
    GenAIConfig,
    GenerationConfig,
    SessionConfig,
    UploadConfig,
    _parse_allowed_origins,
    get_settings,
)


def test_parse_allowed_origins_with_paths() -> None:
    raw = "https://shop.example.com/app, https://admin.example.com/sub"
    assert _parse_allowed_origins(raw) == [
        "https://shop.example.com",
        "https://admin.example.com",
    ]


def test_parse_allowed_origins_with_wildcard() -> None:
    assert _parse_allowed_origins("https://a.example.com,*") == ["*"]


def test_parse_allowed_origins_deduplicates_and_handles_empty() -> None:
    raw = " https://shop.example.com/ , https://shop.example.com ,"
    assert _parse_allowed_origins(raw) == ["https://shop.example.com"]


def test_parse_allowed_origins_defaults_to_wildcard() -> None:
    assert _parse_allowed_origins("") == ["*"]
    assert _parse_allowed_origins(None) == ["*"]


def test_genai_config_falls_back_to_google_api_key(monkeypatch) -> None:
    monkeypatch.delenv("GENAI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    monkeypatch.setenv("GENAI_IMAGE_MODEL", "image-model-x")

    config = GenAIConfig.from_env()

    assert config.api_key == "google-key"
    assert config.is_configured
    assert config.image_model == "image-model-x"
    assert config.prompt_model == GenAIConfig.prompt_model


def test_genai_config_without_key_is_not_configured(monkeypatch) -> None:
    monkeypatch.delenv("GENAI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    assert not GenAIConfig.from_env().is_configured


def test_generation_concurrency_defaults_to_three(monkeypatch) -> None:
    monkeypatch.delenv("GENERATION_MAX_CONCURRENCY", raising=False)
    assert GenerationConfig.from_env().max_concurrency == 3


def test_generation_concurrency_is_clamped_and_tolerates_garbage(monkeypatch) -> None:
    monkeypatch.setenv("GENERATION_MAX_CONCURRENCY", "0")
    assert GenerationConfig.from_env().max_concurrency == 1

    monkeypatch.setenv("GENERATION_MAX_CONCURRENCY", "five")
    assert GenerationConfig.from_env().max_concurrency == 3

    monkeypatch.setenv("GENERATION_MAX_CONCURRENCY", "6")
    assert GenerationConfig.from_env().max_concurrency == 6


def test_upload_config_reads_env(monkeypatch) -> None:
    monkeypatch.setenv("UPLOAD_MAX_BYTES", "1024")
    monkeypatch.setenv("UPLOAD_ALLOWED_MIME", "image/png, image/gif")
    monkeypatch.setenv("DISALLOW_BASE64_IN_JSON", "false")

    config = UploadConfig.from_env()

    assert config.max_bytes == 1024
    assert config.allowed_mime == {"image/png", "image/gif"}
    assert config.disallow_base64 is False


def test_get_settings_is_cached_per_process(monkeypatch) -> None:
    get_settings.cache_clear()
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://shop.example.com/path")
    try:
        settings = get_settings()
        assert settings.log_level == "DEBUG"
        assert settings.allowed_origins == ["https://shop.example.com"]
        assert get_settings() is settings
    finally:
        get_settings.cache_clear()


def test_session_limits_read_env(monkeypatch) -> None:
    monkeypatch.setenv("SESSION_MAX_COUNT", "0")
    monkeypatch.setenv("SESSION_IDLE_TTL_SECONDS", "90")

    config = SessionConfig.from_env()

    assert config.max_sessions == 1
    assert config.idle_ttl_seconds == 90


def test_session_limits_default(monkeypatch) -> None:
    monkeypatch.delenv("SESSION_MAX_COUNT", raising=False)
    monkeypatch.delenv("SESSION_IDLE_TTL_SECONDS", raising=False)

    config = SessionConfig.from_env()

    assert (config.max_sessions, config.idle_ttl_seconds) == (200, 3600)
