import pytest

from app.config import _as_int, _parse_allowed_origins, get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_parse_allowed_origins_with_paths() -> None:
    raw = "https://example.com/app, https://demo.com/sub"
    assert _parse_allowed_origins(raw) == [
        "https://example.com",
        "https://demo.com",
    ]


def test_parse_allowed_origins_with_wildcard() -> None:
    assert _parse_allowed_origins("*") == ["*"]


def test_parse_allowed_origins_deduplicates_and_handles_empty() -> None:
    raw = " https://example.com/ , https://example.com ,"
    assert _parse_allowed_origins(raw) == ["https://example.com"]


def test_parse_allowed_origins_defaults_to_wildcard() -> None:
    assert _parse_allowed_origins("") == ["*"]


def test_as_int_clamps_and_falls_back() -> None:
    assert _as_int("0", 4, minimum=1) == 1
    assert _as_int("abc", 4) == 4
    assert _as_int(None, 7) == 7


def test_settings_defaults(monkeypatch) -> None:
    for name in (
        "GOOGLE_API_KEY",
        "GEMINI_API_KEY",
        "GENERATION_EARLY_RETURN_SECONDS",
        "GENERATION_MAX_VARIATIONS",
        "GENERATION_OUTPUT_FOLDER",
        "R2_ENDPOINT",
        "S3_ENDPOINT",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = get_settings()

    assert settings.genai.is_configured is False
    assert settings.generation.early_return_seconds == 5.0
    assert settings.generation.max_variations == 4
    assert settings.generation.output_folder == "generations"
    assert settings.storage.is_configured is False


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "secret")
    monkeypatch.setenv("GENAI_TEXT_MODEL", "gemini-test")
    monkeypatch.setenv("GENERATION_EARLY_RETURN_SECONDS", "1.5")
    monkeypatch.setenv("GENERATION_OUTPUT_FOLDER", "/ads/out/")
    monkeypatch.setenv("R2_ENDPOINT", "https://r2.example.com")
    monkeypatch.setenv("R2_ACCESS_KEY_ID", "ak")
    monkeypatch.setenv("R2_SECRET_ACCESS_KEY", "sk")
    monkeypatch.setenv("R2_BUCKET", "bucket")

    settings = get_settings()

    assert settings.genai.api_key == "secret"
    assert settings.genai.text_model == "gemini-test"
    assert settings.generation.early_return_seconds == 1.5
    assert settings.generation.output_folder == "ads/out"
    assert settings.storage.is_configured is True
    assert settings.storage.region == "auto"
