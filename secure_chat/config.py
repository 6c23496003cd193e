"""Configuration management for the secure chat client."""

import os
from typing import Any

import httpx
import yaml
from dotenv import load_dotenv

API_KEY_ENV = "SECURE_CHAT_API_KEY"
CONFIG_PATH_ENV = "SECURE_CHAT_CONFIG"


class Configuration:
    """Manages configuration and environment variables for the chat client."""

    def __init__(self, config_path: str | None = None) -> None:
        """Initialize configuration from YAML and environment variables."""
        self.load_env()  # Load .env for API keys
        self.config_path = (
            config_path
            or os.getenv(CONFIG_PATH_ENV)
            or os.path.join(os.path.dirname(__file__), "config.yaml")
        )
        self._config = self._load_yaml_config()

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError(
                    f"Config file must be YAML dict, got {type(config)}"
                )
            return config

    @property
    def api_key(self) -> str | None:
        """Get the API key, if one is set.

        A proxy in front of the endpoint usually injects credentials itself,
        so a missing key is not an error.
        """
        return os.getenv(API_KEY_ENV) or None

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._config

    def get_client_config(self) -> dict[str, Any]:
        """Get chat client configuration from YAML.

        Returns:
            Client configuration dictionary with validated values.

        Raises:
            ValueError: If required client parameters are missing or invalid.
        """
        client_config = self._config.get("client", {})

        required_keys = ["base_url", "model", "completions_path"]
        for key in required_keys:
            if key not in client_config:
                raise ValueError(
                    f"client.{key} must be explicitly configured in config.yaml"
                )

        if not str(client_config["completions_path"]).startswith("/"):
            raise ValueError("client.completions_path must start with '/'")

        headers = client_config.get("headers") or {}
        if not isinstance(headers, dict):
            raise ValueError("client.headers must be a mapping of header names")

        return client_config

    def get_request_headers(self) -> dict[str, str]:
        """Get custom request headers sent with every chat request."""
        headers = self.get_client_config().get("headers") or {}
        return {str(name): str(value) for name, value in headers.items()}

    def get_http_timeout(self) -> httpx.Timeout:
        """Get HTTP timeouts for the transport.

        Raises:
            ValueError: If required timeout parameters are missing or invalid.
        """
        http_config = self.get_client_config().get("http", {})

        required_keys = [
            "connect_timeout", "read_timeout", "write_timeout", "pool_timeout"
        ]
        for key in required_keys:
            if key not in http_config:
                raise ValueError(
                    f"client.http.{key} must be explicitly configured "
                    "in config.yaml"
                )
            if http_config[key] is not None and http_config[key] <= 0:
                raise ValueError(f"client.http.{key} must be positive or null")

        return httpx.Timeout(
            connect=http_config["connect_timeout"],
            read=http_config["read_timeout"],
            write=http_config["write_timeout"],
            pool=http_config["pool_timeout"],
        )

    def get_logging_level(self) -> str:
        """Get the root logging level name."""
        level = str(self._config.get("logging", {}).get("level", "WARNING")).upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown logging level '{level}'")
        return level
