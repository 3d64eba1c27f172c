"""SSO client configuration.

Configuration is always handed to the library explicitly, either built in
code or loaded from a YAML file the caller points at. Nothing here reads the
process environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from evesso.core.errors import ConfigurationError

# EVE Online SSO endpoints
DEFAULT_AUTHORIZATION_ENDPOINT = "https://login.eveonline.com/v2/oauth/authorize/"
DEFAULT_TOKEN_ENDPOINT = "https://login.eveonline.com/v2/oauth/token"
DEFAULT_DISCOVERY_URL = "https://login.eveonline.com/.well-known/oauth-authorization-server"
DEFAULT_ISSUER = "https://login.eveonline.com"
DEFAULT_AUDIENCE = "EVE Online"

DEFAULT_ALGORITHM = "RS256"
DEFAULT_JWKS_TTL_SECONDS = 10800
DEFAULT_HTTP_TIMEOUT = 10.0
MAX_CLOCK_SKEW_SECONDS = 300

RSA_ALGORITHMS = frozenset({"RS256", "RS384", "RS512", "PS256", "PS384", "PS512"})
EC_ALGORITHMS = frozenset({"ES256", "ES384", "ES512"})
SUPPORTED_ALGORITHMS = RSA_ALGORITHMS | EC_ALGORITHMS

TOKEN_AUTH_METHODS = ("client_secret_basic", "client_secret_post")


@dataclass
class SSOConfig:
    """Settings for one registered SSO application."""

    client_id: str
    client_secret: str
    redirect_url: str
    scopes: list[str] = field(default_factory=list)

    # Provider endpoints
    authorization_endpoint: str = DEFAULT_AUTHORIZATION_ENDPOINT
    token_endpoint: str = DEFAULT_TOKEN_ENDPOINT
    discovery_url: str = DEFAULT_DISCOVERY_URL

    # Token verification
    issuer: str = DEFAULT_ISSUER
    audience: str = DEFAULT_AUDIENCE
    algorithm: str = DEFAULT_ALGORITHM
    jwks_ttl_seconds: float = DEFAULT_JWKS_TTL_SECONDS
    clock_skew_seconds: int = 0

    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    token_auth_method: str = "client_secret_basic"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigurationError: If any setting is out of range.
        """
        if not self.client_id:
            raise ConfigurationError("client_id is required")
        if self.jwks_ttl_seconds <= 0:
            raise ConfigurationError(f"jwks_ttl_seconds must be positive, got {self.jwks_ttl_seconds}")
        if self.http_timeout <= 0:
            raise ConfigurationError(f"http_timeout must be positive, got {self.http_timeout}")
        if not 0 <= self.clock_skew_seconds <= MAX_CLOCK_SKEW_SECONDS:
            raise ConfigurationError(
                f"clock_skew_seconds must be between 0 and {MAX_CLOCK_SKEW_SECONDS}, got {self.clock_skew_seconds}"
            )
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported signing algorithm: {self.algorithm}")
        if self.token_auth_method not in TOKEN_AUTH_METHODS:
            raise ConfigurationError(f"Unsupported token_auth_method: {self.token_auth_method}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SSOConfig:
        """Create SSOConfig from a dictionary.

        Args:
            data: Mapping with at least client_id, client_secret and redirect_url.

        Returns:
            Validated SSOConfig.

        Raises:
            ConfigurationError: If required keys are missing or values are invalid.
        """
        missing = [key for key in ("client_id", "client_secret", "redirect_url") if not data.get(key)]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        return cls(
            client_id=str(data["client_id"]),
            client_secret=str(data["client_secret"]),
            redirect_url=str(data["redirect_url"]),
            scopes=list(data.get("scopes") or []),
            authorization_endpoint=data.get("authorization_endpoint", DEFAULT_AUTHORIZATION_ENDPOINT),
            token_endpoint=data.get("token_endpoint", DEFAULT_TOKEN_ENDPOINT),
            discovery_url=data.get("discovery_url", DEFAULT_DISCOVERY_URL),
            issuer=data.get("issuer", DEFAULT_ISSUER),
            audience=data.get("audience", DEFAULT_AUDIENCE),
            algorithm=data.get("algorithm", DEFAULT_ALGORITHM),
            jwks_ttl_seconds=data.get("jwks_ttl_seconds", DEFAULT_JWKS_TTL_SECONDS),
            clock_skew_seconds=data.get("clock_skew_seconds", 0),
            http_timeout=data.get("http_timeout", DEFAULT_HTTP_TIMEOUT),
            token_auth_method=data.get("token_auth_method", "client_secret_basic"),
        )

    def to_dict(self, include_secret: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        The client secret is masked unless ``include_secret`` is set.
        """
        return {
            "client_id": self.client_id,
            "client_secret": self.client_secret if include_secret else "********",
            "redirect_url": self.redirect_url,
            "scopes": list(self.scopes),
            "authorization_endpoint": self.authorization_endpoint,
            "token_endpoint": self.token_endpoint,
            "discovery_url": self.discovery_url,
            "issuer": self.issuer,
            "audience": self.audience,
            "algorithm": self.algorithm,
            "jwks_ttl_seconds": self.jwks_ttl_seconds,
            "clock_skew_seconds": self.clock_skew_seconds,
            "http_timeout": self.http_timeout,
            "token_auth_method": self.token_auth_method,
        }

    def save(self, path: Path) -> None:
        """Write the configuration, secret included, to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(include_secret=True), f, default_flow_style=False, sort_keys=False)


def load_config(path: Path | str) -> SSOConfig:
    """Load an SSOConfig from a YAML file.

    The file may hold the settings at the top level or under an ``sso`` key.

    Args:
        path: Path to the YAML file.

    Returns:
        Validated SSOConfig.

    Raises:
        ConfigurationError: If the file is missing, unparseable or invalid.
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    if isinstance(data.get("sso"), dict):
        data = data["sso"]
    return SSOConfig.from_dict(data)
