import os

import pytest
from pydantic import ValidationError

from gqltask.core.config import APP_VERSION, Settings, _load_env_file, get_settings


def test_defaults():
    settings = Settings()
    assert settings.http_timeout == 30.0
    assert settings.encryption_key is None
    assert settings.encryption_enabled is False
    assert settings.log_level == "INFO"
    assert settings.log_json is False
    assert settings.user_agent == f"gqltask/{APP_VERSION}"


def test_values_from_aliases():
    settings = Settings(
        GQLTASK_HTTP_TIMEOUT="5",
        GQLTASK_LOG_LEVEL="debug",
        GQLTASK_LOG_JSON="yes",
        GQLTASK_ENCRYPTION_KEY="  ",
    )
    assert settings.http_timeout == 5.0
    assert settings.log_level == "DEBUG"
    assert settings.log_json is True
    assert settings.encryption_key is None


@pytest.mark.parametrize("field,value", [
    ("GQLTASK_HTTP_TIMEOUT", "0"),
    ("GQLTASK_HTTP_TIMEOUT", "-3"),
    ("GQLTASK_LOG_LEVEL", "LOUD"),
    ("GQLTASK_LOG_JSON", "maybe"),
])
def test_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


def test_get_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("GQLTASK_HTTP_TIMEOUT", "7.5")
    monkeypatch.setenv("GQLTASK_ENCRYPTION_KEY", "k")
    try:
        settings = get_settings(reload=True)
        assert settings.http_timeout == 7.5
        assert settings.encryption_enabled is True
        assert get_settings() is settings
    finally:
        monkeypatch.delenv("GQLTASK_HTTP_TIMEOUT")
        monkeypatch.delenv("GQLTASK_ENCRYPTION_KEY")
        get_settings(reload=True)


def test_env_file_loader(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# comment\n"
        "export GQLTASK_TEST_A=\"quoted value\"\n"
        "GQLTASK_TEST_B='single'\n"
        "GQLTASK_TEST_C=kept\n"
        "not a pair\n"
    )
    monkeypatch.setenv("GQLTASK_TEST_C", "original")
    monkeypatch.delenv("GQLTASK_TEST_A", raising=False)
    monkeypatch.delenv("GQLTASK_TEST_B", raising=False)

    _load_env_file(str(env_file))

    assert os.environ["GQLTASK_TEST_A"] == "quoted value"
    assert os.environ["GQLTASK_TEST_B"] == "single"
    assert os.environ["GQLTASK_TEST_C"] == "original"
    monkeypatch.delenv("GQLTASK_TEST_A")
    monkeypatch.delenv("GQLTASK_TEST_B")
