"""Run configuration.

Settings come from an optional YAML file, then the environment
(``API_BASE_URL``, ``API_TOKEN``), then command-line options.

    info:
      title: Lap Times API
      version: v1
    servers:
      - url: https://{host}
        variables:
          host: {default: api.example.com}
    environments:
      dev: http://localhost:3000
      staging: https://staging-api.example.com
    security_schemes:
      bearer_auth: {type: http, scheme: bearer, bearerFormat: JWT}
"""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from api_contract.compiler.document import Info, Server
from api_contract.harness.runner import DEFAULT_WORKERS
from api_contract.harness.transport import DEFAULT_TIMEOUT
from api_contract.spec.errors import ConfigError

DEFAULT_CONFIG = Path("api-contract.yaml")
DEFAULT_OUTPUT = Path("openapi/v1/openapi.yaml")


class Settings(BaseModel):
    info: Info = Info()
    servers: list[Server] = []
    security_schemes: dict[str, dict] = {}
    environments: dict[str, str] = {}
    base_url: str | None = None
    api_token: str = ""
    output: Path = DEFAULT_OUTPUT
    workers: int = DEFAULT_WORKERS
    timeout: float = DEFAULT_TIMEOUT

    def base_url_for(self, environment: str | None = None) -> str | None:
        """Base URL of an environment, falling back to ``base_url``."""
        if environment:
            if environment not in self.environments:
                known = ", ".join(sorted(self.environments)) or "none"
                raise ConfigError(f"Unknown environment '{environment}' (configured: {known})")
            return self.environments[environment]
        return self.base_url


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from ``config_path``, or ``api-contract.yaml`` if present."""
    data: dict = {}
    path = config_path or (DEFAULT_CONFIG if DEFAULT_CONFIG.exists() else None)
    if path is not None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a mapping")

    if os.getenv("API_BASE_URL"):
        data["base_url"] = os.getenv("API_BASE_URL")
    if os.getenv("API_TOKEN"):
        data["api_token"] = os.getenv("API_TOKEN")

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e
