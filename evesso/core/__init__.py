"""Core SSO flow, configuration and logging."""

from evesso.core.config import SSOConfig, load_config
from evesso.core.logging import (
    HTTPExchange,
    LoggingAsyncClient,
    LogLevel,
    ProtocolLogger,
    configure_logging,
    get_protocol_logger,
    redact_sensitive,
    set_protocol_logger,
)

__all__ = [
    "HTTPExchange",
    "LoggingAsyncClient",
    "LogLevel",
    "ProtocolLogger",
    "SSOConfig",
    "configure_logging",
    "get_protocol_logger",
    "load_config",
    "redact_sensitive",
    "set_protocol_logger",
]
