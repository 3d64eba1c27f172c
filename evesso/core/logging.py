"""Protocol logging for SSO network traffic.

Records every request made to the identity provider (discovery, JWKS and
token endpoints) with configurable detail and redaction of credentials.

Log levels:
- ERROR: Only log failed exchanges
- INFO: One line per exchange (method, URL, status, timing)
- DEBUG: Adds request/response headers and redirect chain
- TRACE: Adds bodies; secrets are shown only when trace is explicitly enabled
"""

from __future__ import annotations

import itertools
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import httpx

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("evesso.protocol")

_BODY_LIMIT = 2000


class LogLevel(IntEnum):
    """Protocol logging levels."""

    ERROR = logging.ERROR
    INFO = logging.INFO
    DEBUG = logging.DEBUG
    TRACE = TRACE


SENSITIVE_PATTERNS = [
    # Form and query parameters
    (re.compile(r"(client_secret=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(?<![a-z_])(code=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(access_token=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(refresh_token=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(code_verifier=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(state=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    # Headers, with or without the header name in front
    (re.compile(r"(Authorization:\s*Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(Authorization:\s*Basic\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"^(Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"^(Basic\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(Cookie:\s*)[^\r\n]+", re.IGNORECASE), r"\1[REDACTED]"),
    # JSON bodies
    (re.compile(r'"(access_token)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
    (re.compile(r'"(refresh_token)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
    (re.compile(r'"(id_token)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
    (re.compile(r'"(client_secret)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
]


def redact_sensitive(text: str) -> str:
    """Redact credentials and tokens from text.

    Args:
        text: Text that may contain sensitive data.

    Returns:
        Text with sensitive values replaced by ``[REDACTED]``.
    """
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _truncate(body: str) -> str:
    return f"{body[:_BODY_LIMIT]}{'...' if len(body) > _BODY_LIMIT else ''}"


@dataclass
class HTTPExchange:
    """A single HTTP request/response exchange with the provider."""

    id: str
    timestamp: datetime
    method: str
    url: str
    request_headers: dict[str, str]
    request_body: str | None = None
    response_status: int | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response_body: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    redirects: list[dict[str, Any]] = field(default_factory=list)

    def format_log(self, level: LogLevel, include_sensitive: bool = False) -> str:
        """Format the exchange for the protocol log.

        Args:
            level: Effective log level; lower levels include more detail.
            include_sensitive: If True, secrets are not redacted.

        Returns:
            Multi-line log text.
        """

        def show(value: str) -> str:
            return value if include_sensitive else redact_sensitive(value)

        status = self.response_status or "ERROR"
        lines = [f"HTTP {self.method} {show(self.url)} -> {status}"]
        if self.duration_ms is not None:
            lines.append(f"  Duration: {self.duration_ms:.1f}ms")
        if self.error:
            lines.append(f"  Error: {self.error}")

        if level <= LogLevel.DEBUG:
            lines.append("  Request Headers:")
            lines.extend(f"    {name}: {show(value)}" for name, value in self.request_headers.items())
            if self.response_headers:
                lines.append("  Response Headers:")
                lines.extend(f"    {name}: {show(value)}" for name, value in self.response_headers.items())
            if self.redirects:
                lines.append("  Redirects:")
                lines.extend(f"    -> {r.get('status', '???')} {show(r['url'])}" for r in self.redirects)

        if level <= LogLevel.TRACE:
            if self.request_body:
                lines.append("  Request Body:")
                lines.append(f"    {_truncate(show(self.request_body))}")
            if self.response_body:
                lines.append("  Response Body:")
                lines.append(f"    {_truncate(show(self.response_body))}")

        return "\n".join(lines)


class ProtocolLogger:
    """Writes HTTP exchanges to the ``evesso.protocol`` logger.

    TRACE output includes secrets only when ``trace_enabled`` is set; without
    it a TRACE level is treated as DEBUG.
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        trace_enabled: bool = False,
    ) -> None:
        self._level = level
        self._trace_enabled = trace_enabled

    @property
    def level(self) -> LogLevel:
        """Get current log level."""
        return self._level

    @level.setter
    def level(self, value: LogLevel) -> None:
        self._level = value

    @property
    def trace_enabled(self) -> bool:
        """Whether TRACE output with secrets is allowed."""
        return self._trace_enabled

    @trace_enabled.setter
    def trace_enabled(self, value: bool) -> None:
        self._trace_enabled = value

    @property
    def effective_level(self) -> LogLevel:
        """Get effective log level (TRACE only if explicitly enabled)."""
        if self._level == LogLevel.TRACE and not self._trace_enabled:
            return LogLevel.DEBUG
        return self._level

    def log_exchange(self, exchange: HTTPExchange) -> None:
        """Log an HTTP exchange at the configured level.

        Args:
            exchange: The HTTP exchange to log.
        """
        effective = self.effective_level
        include_sensitive = self._trace_enabled and self._level <= LogLevel.TRACE

        if effective <= LogLevel.DEBUG:
            logger.debug(exchange.format_log(effective, include_sensitive))
        elif effective <= LogLevel.INFO:
            logger.info(exchange.format_log(effective, include_sensitive))

        if exchange.error:
            url = exchange.url if include_sensitive else redact_sensitive(exchange.url)
            logger.error(f"HTTP error: {exchange.method} {url}: {exchange.error}")


class LoggingAsyncClient(httpx.AsyncClient):
    """Async HTTPX client that reports every exchange to a ProtocolLogger."""

    _counter = itertools.count(1)

    def __init__(
        self,
        protocol_logger: ProtocolLogger | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the logging client.

        Args:
            protocol_logger: ProtocolLogger to use. Uses the global one if not provided.
            **kwargs: Additional arguments passed to httpx.AsyncClient.
        """
        self._protocol_logger = protocol_logger or get_protocol_logger()
        kwargs.setdefault("follow_redirects", True)
        super().__init__(**kwargs)

    @property
    def protocol_logger(self) -> ProtocolLogger:
        """Get the protocol logger."""
        return self._protocol_logger

    async def send(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        """Send a request and log the exchange, including failures."""
        start_time = time.perf_counter()
        exchange = HTTPExchange(
            id=f"http_{next(self._counter):04d}",
            timestamp=datetime.now(UTC),
            method=request.method,
            url=str(request.url),
            request_headers=dict(request.headers),
            request_body=_request_body(request),
        )

        try:
            response = await super().send(request, **kwargs)
        except httpx.HTTPError as e:
            exchange.duration_ms = (time.perf_counter() - start_time) * 1000
            exchange.error = f"{type(e).__name__}: {e}"
            self._protocol_logger.log_exchange(exchange)
            raise

        exchange.duration_ms = (time.perf_counter() - start_time) * 1000
        exchange.response_status = response.status_code
        exchange.response_headers = dict(response.headers)
        exchange.redirects = [
            {"url": str(r.headers.get("location", "")), "status": r.status_code} for r in response.history
        ]
        if not kwargs.get("stream"):
            exchange.response_body = response.text
        self._protocol_logger.log_exchange(exchange)
        return response


def _request_body(request: httpx.Request) -> str | None:
    try:
        content = request.content
    except httpx.RequestNotRead:
        return "<streaming content>"
    if not content:
        return None
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return "<binary content>"


_global_logger: ProtocolLogger | None = None


def get_protocol_logger() -> ProtocolLogger:
    """Get the process-wide default protocol logger."""
    global _global_logger
    if _global_logger is None:
        _global_logger = ProtocolLogger()
    return _global_logger


def set_protocol_logger(logger_instance: ProtocolLogger) -> None:
    """Replace the process-wide default protocol logger.

    Args:
        logger_instance: ProtocolLogger to use globally.
    """
    global _global_logger
    _global_logger = logger_instance


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    trace_enabled: bool = False,
    log_file: str | None = None,
) -> ProtocolLogger:
    """Configure protocol logging handlers and the default ProtocolLogger.

    Args:
        level: Log level (ERROR, INFO, DEBUG, TRACE) or its name.
        trace_enabled: Whether TRACE may include secrets.
        log_file: Optional file path to write logs to.

    Returns:
        The configured ProtocolLogger, also installed as the global default.
    """
    if isinstance(level, str):
        level = LogLevel.__members__.get(level.upper(), LogLevel.INFO)

    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    protocol_logger = ProtocolLogger(level=level, trace_enabled=trace_enabled)
    set_protocol_logger(protocol_logger)

    if trace_enabled:
        logger.warning("TRACE logging enabled - sensitive data (tokens, secrets) will be logged!")

    return protocol_logger
