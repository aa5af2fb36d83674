"""
Configuration management for the mcpki gateway.

This module handles loading and validating the configuration of the CA
backend connection, the input validation bounds and the per-tool enable flags.
The configuration is read once at startup and is read-only afterwards.
"""

import json
import logging
import os
import string
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)

TOOL_NAMES = [
    "create_crl",
    "get_available_cas",
    "get_ca_certificate",
    "get_certificate_profile",
    "get_certificates_about_to_expire",
    "get_count_certificates",
    "get_latest_crl",
    "enroll_certificate_with_csr",
    "revoke_certificate",
    "parse_certificate",
]

DEFAULT_PASSWORD_ALLOWED_CHARACTERS = (
    string.ascii_letters + string.digits + "!#%*+,-./:=?@_"
)

# Environment variables taking precedence over the backend section of the file.
ENV_OVERRIDES = {
    "MCPKI_BACKEND_URL": "url",
    "MCPKI_CLIENT_CERT": "client_cert",
    "MCPKI_CLIENT_KEY": "client_key",
    "MCPKI_CLIENT_KEY_PASSWORD": "client_key_password",
    "MCPKI_TRUSTSTORE": "truststore",
}


class ConfigurationError(Exception):
    """Raised when the startup configuration is missing or invalid."""


@dataclass
class BackendSettings:
    """Connection settings for the CA REST backend. The backend is always
    reached over mutual TLS, so a client certificate and key are required."""

    url: str
    client_cert: Optional[str] = None
    client_key: Optional[str] = None
    client_key_password: Optional[str] = None
    truststore: Optional[str] = None
    timeout: float = 30.0

    def __post_init__(self):
        """Validate settings after initialization."""
        if not self.url:
            raise ConfigurationError("Backend url cannot be empty")
        if not self.url.startswith("https://"):
            raise ConfigurationError(f"Backend url must use https: {self.url}")
        try:
            # Same canonical form as the request URLs httpx reports in errors
            self.url = str(httpx.URL(self.url)).rstrip("/")
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"Invalid backend url: {e}")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if not self.client_cert or not self.client_key:
            raise ConfigurationError(
                "client_cert and client_key are required for mutual TLS"
            )

    def check_files(self) -> None:
        """
        Verify that the configured certificate, key and trust files exist.

        Raises:
            ConfigurationError: If a configured file cannot be found
        """
        for name in ("client_cert", "client_key", "truststore"):
            path = getattr(self, name)
            if path and not Path(path).is_file():
                raise ConfigurationError(f"{name} not found: {path}")


@dataclass
class ValidationSettings:
    """Length bounds and character sets applied to tool input."""

    dn_min_length: int = 1
    dn_max_length: int = 512
    name_min_length: int = 1
    name_max_length: int = 128
    email_min_length: int = 6
    email_max_length: int = 254
    pem_min_length: int = 64
    pem_max_length: int = 65536
    password_min_length: int = 8
    password_max_length: int = 128
    serial_number_hex_length: int = 40
    password_allowed_characters: str = DEFAULT_PASSWORD_ALLOWED_CHARACTERS

    def __post_init__(self):
        """Validate bounds after initialization."""
        for prefix in ("dn", "name", "email", "pem", "password"):
            minimum = getattr(self, f"{prefix}_min_length")
            maximum = getattr(self, f"{prefix}_max_length")
            if minimum < 0:
                raise ConfigurationError(f"{prefix}_min_length must be non-negative")
            if maximum < minimum:
                raise ConfigurationError(
                    f"{prefix}_max_length must not be smaller than {prefix}_min_length"
                )
        if self.serial_number_hex_length <= 0:
            raise ConfigurationError("serial_number_hex_length must be positive")
        if not self.password_allowed_characters:
            raise ConfigurationError("password_allowed_characters cannot be empty")


@dataclass
class ToolSettings:
    """Per-tool enable flags, evaluated once during tool registration."""

    enabled: Dict[str, bool] = field(default_factory=dict)
    expire_max_items: int = 100

    def __post_init__(self):
        """Validate tool settings after initialization."""
        unknown = set(self.enabled) - set(TOOL_NAMES)
        if unknown:
            raise ConfigurationError(f"Unknown tools: {', '.join(sorted(unknown))}")
        if self.expire_max_items <= 0:
            raise ConfigurationError("expire_max_items must be positive")

    def is_enabled(self, tool_name: str) -> bool:
        """Check if a tool should be registered. Tools are disabled by default."""
        return bool(self.enabled.get(tool_name, False))

    def get_enabled_tools(self) -> List[str]:
        """Get the names of all enabled tools."""
        return [name for name in TOOL_NAMES if self.is_enabled(name)]


@dataclass
class ServerSettings:
    """Settings for the MCP server itself."""

    name: str = "mcpki"
    host: str = "0.0.0.0"
    port: int = 8001

    def __post_init__(self):
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid port: {self.port}")


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""

    backend: BackendSettings
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    tools: ToolSettings = field(default_factory=ToolSettings)
    server: ServerSettings = field(default_factory=ServerSettings)

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], environ: Optional[Dict[str, str]] = None
    ) -> "GatewayConfig":
        """
        Build the configuration from a dictionary.

        Args:
            data: The parsed configuration file content.
            environ: Environment used for overrides. Defaults to os.environ.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        environ = os.environ if environ is None else environ

        backend_data = dict(data.get("backend", {}))
        for env_name, key in ENV_OVERRIDES.items():
            if environ.get(env_name):
                backend_data[key] = environ[env_name]

        tools_data = dict(data.get("tools", {}))
        expire_max_items = tools_data.pop("expire_max_items", 100)

        try:
            return cls(
                backend=BackendSettings(**_known(BackendSettings, backend_data)),
                validation=ValidationSettings(
                    **_known(ValidationSettings, data.get("validation", {}))
                ),
                tools=ToolSettings(
                    enabled=tools_data, expire_max_items=expire_max_items
                ),
                server=ServerSettings(**_known(ServerSettings, data.get("server", {}))),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")


def _known(settings_cls, values: Dict[str, Any]) -> Dict[str, Any]:
    """Reject keys that do not belong to the given settings dataclass."""
    names = {f.name for f in fields(settings_cls)}
    unknown = set(values) - names
    if unknown:
        raise ConfigurationError(
            f"Unknown {settings_cls.__name__} keys: {', '.join(sorted(unknown))}"
        )
    return dict(values)


def resolve_config_path(config_path: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the configuration file path."""
    if config_path:
        return Path(config_path)
    if os.environ.get("MCPKI_CONFIG"):
        return Path(os.environ["MCPKI_CONFIG"])

    # Default to mcpki.json in the repository root
    return Path(__file__).parent.parent / "mcpki.json"


def load_config(config_path: Optional[Union[str, Path]] = None) -> GatewayConfig:
    """
    Load the gateway configuration from file.

    Args:
        config_path: Path to configuration file. If None, uses MCPKI_CONFIG or
            the default location.

    Returns:
        Loaded GatewayConfig instance

    Raises:
        ConfigurationError: If the file is missing or the config is invalid
    """
    path = resolve_config_path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    logger.info(f"Loading mcpki configuration from {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in configuration file: {e}")

    if not isinstance(config_data, dict):
        raise ConfigurationError("Configuration root must be an object")

    config = GatewayConfig.from_dict(config_data)
    config.backend.check_files()

    logger.info(
        f"Loaded configuration with {len(config.tools.get_enabled_tools())} enabled tools"
    )
    return config
