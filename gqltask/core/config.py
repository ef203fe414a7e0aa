import os
import sys
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


APP_NAME = "gqltask"
APP_VERSION = "0.1.0"

_ENV_LOADED = False


def _load_env_file(path: str, allow_override: bool = False) -> None:
    """
    Minimal .env loader: loads KEY=VALUE pairs into os.environ.
    - Ignores empty lines and lines starting with '#'
    - Supports values wrapped in single or double quotes
    - By default, does not override existing environment variables
    """
    if not path or not os.path.exists(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].strip()
                if "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]
                if allow_override or key not in os.environ:
                    os.environ[key] = value
    except PermissionError as e:
        print(f"FATAL: Permission denied reading environment file {path}: {e}", file=sys.stderr)
        raise


def load_env_if_present(force_reload: bool = False) -> None:
    """
    Load environment variables from GQLTASK_ENV_FILE when set, otherwise from
    .env.local then .env in the working directory. Existing variables win.
    """
    global _ENV_LOADED
    if _ENV_LOADED and not force_reload:
        return

    custom = os.environ.get("GQLTASK_ENV_FILE")
    if custom:
        _load_env_file(custom)
    else:
        for env_file in ('.env.local', '.env'):
            _load_env_file(env_file)

    _ENV_LOADED = True


class Settings(BaseModel):
    """
    gqltask settings from environment variables.
    """
    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    app_name: str = APP_NAME
    app_version: str = APP_VERSION

    http_timeout: float = Field(default=30.0, alias="GQLTASK_HTTP_TIMEOUT")
    encryption_key: Optional[str] = Field(default=None, alias="GQLTASK_ENCRYPTION_KEY", repr=False)
    log_level: str = Field(default="INFO", alias="GQLTASK_LOG_LEVEL")
    log_json: bool = Field(default=False, alias="GQLTASK_LOG_JSON")
    user_agent: str = Field(default=f"{APP_NAME}/{APP_VERSION}", alias="GQLTASK_USER_AGENT")

    @field_validator('log_json', mode='before')
    def coerce_bool(cls, v):
        if isinstance(v, bool):
            return v
        if not isinstance(v, str):
            raise ValueError("Expected string for boolean field")
        val = v.strip().lower()
        if val in ("true", "1", "yes", "y", "on"):
            return True
        if val in ("false", "0", "no", "n", "off", ""):
            return False
        raise ValueError(f"Invalid boolean value: {v}")

    @field_validator('http_timeout', mode='before')
    def coerce_timeout(cls, v):
        if isinstance(v, str):
            v = float(v.strip())
        if not isinstance(v, (int, float)) or v <= 0:
            raise ValueError("GQLTASK_HTTP_TIMEOUT must be a positive number of seconds")
        return float(v)

    @field_validator('log_level', mode='before')
    def normalize_level(cls, v):
        level = str(v).strip().upper()
        if level not in ("DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator('encryption_key', mode='before')
    def blank_key_is_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def encryption_enabled(self) -> bool:
        return self.encryption_key is not None


_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """
    Get application settings. Reads the environment on first call.
    Set reload=True to force reloading from current environment.
    """
    global _settings
    if _settings is None or reload:
        load_env_if_present(force_reload=reload)
        env_values = {
            name: os.environ[name]
            for name in (
                "GQLTASK_HTTP_TIMEOUT",
                "GQLTASK_ENCRYPTION_KEY",
                "GQLTASK_LOG_LEVEL",
                "GQLTASK_LOG_JSON",
                "GQLTASK_USER_AGENT",
            )
            if name in os.environ
        }
        _settings = Settings(**env_values)
    return _settings
