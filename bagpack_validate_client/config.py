import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import AnyHttpUrl, BaseModel, Field

CONFIG_ENV_VAR = "BAGPACK_VALIDATE_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/bagpack-validate/config.yml")


class ServiceConfig(BaseModel):
    url: AnyHttpUrl = Field(
        default="http://localhost:20375",
        description="Base URL of the validate-bagpack service",
    )
    timeout: Optional[float] = Field(
        default=30.0,
        gt=0.0,
        description="Total seconds allowed for one HTTP request, None for no limit",
    )

    @property
    def base_url(self) -> str:
        return str(self.url).rstrip("/")


class LoggingConfig(BaseModel):
    level: Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"] = "INFO"


class ClientConfig(BaseModel):
    validate_bagpack: ServiceConfig = Field(default_factory=ServiceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "ClientConfig":
        """Reads the config from `path`, the env var, or the default location

        A path that was named explicitly must exist; the default location is
        optional and plain defaults are used when it is absent.
        """
        explicit = path or os.environ.get(CONFIG_ENV_VAR)
        if explicit:
            return cls.model_validate(_read_config_file(explicit))

        default_path = DEFAULT_CONFIG_PATH.expanduser()
        if default_path.exists():
            return cls.model_validate(_read_config_file(str(default_path)))
        return cls()


def _read_config_file(path: str) -> Dict[str, Any]:
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")
    suffix = config_path.suffix.lower()
    content = config_path.read_text(encoding="utf-8")
    if not content.strip():
        return {}
    if suffix in {".yaml", ".yml"}:
        return yaml.safe_load(content) or {}
    if suffix == ".json":
        return json.loads(content)
    raise ValueError(f"Unsupported config file format: {suffix}")
