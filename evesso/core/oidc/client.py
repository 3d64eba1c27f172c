"""OAuth2 Authorization Code flow client.

Builds the provider login URL, exchanges the callback code for an access
token and hands that token to the TokenVerifier. Session handling stays with
the caller: it stores the returned state, compares it with ``verify_state``
on the callback, then calls ``exchange_code``.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Iterable
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from evesso.core.config import (
    DEFAULT_AUTHORIZATION_ENDPOINT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_TOKEN_ENDPOINT,
    SSOConfig,
)
from evesso.core.errors import CsrfStateMismatchError, InvalidRedirectUrlError, TokenExchangeFailedError
from evesso.core.logging import LoggingAsyncClient, ProtocolLogger
from evesso.core.oidc.jwks import KeySetCache
from evesso.core.oidc.models import AccessToken, AuthenticationRequest, IdentityClaims
from evesso.core.oidc.utils import generate_code_challenge, generate_code_verifier
from evesso.core.oidc.validation import TokenVerifier

logger = logging.getLogger(__name__)


def _check_redirect_url(redirect_url: str) -> None:
    try:
        url = httpx.URL(redirect_url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidRedirectUrlError(str(redirect_url), str(e)) from e
    if url.scheme not in ("http", "https"):
        raise InvalidRedirectUrlError(redirect_url, "scheme must be http or https")
    if not url.host:
        raise InvalidRedirectUrlError(redirect_url, "missing host")


def _unique(scopes: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(scopes))


def build_login_request(
    client_id: str,
    client_secret: str,
    redirect_url: str,
    scopes: Iterable[str],
    *,
    authorization_endpoint: str = DEFAULT_AUTHORIZATION_ENDPOINT,
    use_pkce: bool = False,
) -> AuthenticationRequest:
    """Create the provider login URL and its CSRF state.

    The client secret is not part of the URL; it is accepted so the login and
    exchange helpers take the same credentials.

    Args:
        client_id: Application client id.
        client_secret: Application client secret.
        redirect_url: Callback URL registered with the provider.
        scopes: Requested scopes.
        authorization_endpoint: Provider authorize URL.
        use_pkce: Add an S256 PKCE challenge; the verifier is returned on the request.

    Returns:
        AuthenticationRequest with the login URL and a fresh state token.

    Raises:
        InvalidRedirectUrlError: If redirect_url is not an absolute http(s) URL.
    """
    _check_redirect_url(redirect_url)

    state = secrets.token_urlsafe(32)
    params: dict[str, str] = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_url,
        "scope": " ".join(_unique(scopes)),
        "state": state,
    }

    code_verifier: str | None = None
    if use_pkce:
        code_verifier = generate_code_verifier()
        params["code_challenge"] = generate_code_challenge(code_verifier)
        params["code_challenge_method"] = "S256"

    separator = "&" if "?" in authorization_endpoint else "?"
    login_url = f"{authorization_endpoint}{separator}{urlencode(params, quote_via=quote)}"

    return AuthenticationRequest(login_url=login_url, state=state, code_verifier=code_verifier)


def verify_state(expected: str | None, received: str | None) -> None:
    """Compare the callback state against the one issued with the login URL.

    Raises:
        CsrfStateMismatchError: If either value is missing or they differ.
    """
    if not expected or not received:
        raise CsrfStateMismatchError()
    if not hmac.compare_digest(expected.encode(), received.encode()):
        raise CsrfStateMismatchError()


def _error_fields(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        data = response.json()
    except ValueError:
        return None, None
    if not isinstance(data, dict):
        return None, None
    return data.get("error"), data.get("error_description")


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    *,
    token_endpoint: str = DEFAULT_TOKEN_ENDPOINT,
    redirect_url: str | None = None,
    code_verifier: str | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    auth_method: str = "client_secret_basic",
) -> AccessToken:
    """Exchange an authorization code for an access token.

    Args:
        client_id: Application client id.
        client_secret: Application client secret.
        code: Authorization code from the callback.
        token_endpoint: Provider token URL.
        redirect_url: Redirect URI sent with the authorization request, if any.
        code_verifier: PKCE verifier, if the request used PKCE.
        http_client: Client to use; a temporary one is created otherwise.
        timeout: Request timeout for a temporary client.
        auth_method: ``client_secret_basic`` (HTTP Basic) or ``client_secret_post``.

    Returns:
        AccessToken from the provider.

    Raises:
        TokenExchangeFailedError: On network errors, error statuses or an
            unusable response body.
    """
    data: dict[str, str] = {
        "grant_type": "authorization_code",
        "code": code,
    }
    if redirect_url:
        data["redirect_uri"] = redirect_url
    if code_verifier:
        data["code_verifier"] = code_verifier

    auth: httpx.BasicAuth | None = None
    if auth_method == "client_secret_post":
        data["client_id"] = client_id
        data["client_secret"] = client_secret
    else:
        auth = httpx.BasicAuth(client_id, client_secret)

    client = http_client or LoggingAsyncClient(timeout=timeout)
    try:
        response = await client.post(
            token_endpoint,
            data=data,
            auth=auth,
            headers={"Accept": "application/json"},
        )
    except httpx.TimeoutException as e:
        raise TokenExchangeFailedError(f"Timeout during token exchange with {token_endpoint}") from e
    except httpx.HTTPError as e:
        raise TokenExchangeFailedError(f"HTTP error during token exchange: {e}") from e
    finally:
        if http_client is None:
            await client.aclose()

    return _parse_token_response(response)


def _parse_token_response(response: httpx.Response) -> AccessToken:
    if not response.is_success:
        error, description = _error_fields(response)
        message = f"Token request failed with status {response.status_code}"
        if error:
            message += f": {error}"
        if description:
            message += f" ({description})"
        raise TokenExchangeFailedError(
            message,
            status_code=response.status_code,
            error=error,
            error_description=description,
        )

    try:
        body: Any = response.json()
    except ValueError as e:
        raise TokenExchangeFailedError("Token response is not valid JSON", status_code=response.status_code) from e

    if not isinstance(body, dict):
        raise TokenExchangeFailedError("Token response is not a JSON object", status_code=response.status_code)
    access_token = body.get("access_token")
    token_type = body.get("token_type")
    if not isinstance(access_token, str) or not access_token:
        raise TokenExchangeFailedError("Token response has no access_token", status_code=response.status_code)
    if not isinstance(token_type, str) or not token_type:
        raise TokenExchangeFailedError("Token response has no token_type", status_code=response.status_code)

    expires_in = body.get("expires_in")
    return AccessToken(
        access_token=access_token,
        token_type=token_type,
        expires_in=expires_in if isinstance(expires_in, int) else None,
        refresh_token=body.get("refresh_token"),
        scope=body.get("scope"),
        raw_response=body,
    )


class SSOClient:
    """Login, code exchange and token verification for one application.

    One instance holds one key set cache; share it across requests.

    Usage:
        async with SSOClient(config) as sso:
            request = sso.build_login_request()
            ...
            verify_state(stored_state, callback_state)
            claims = await sso.authenticate(callback_code)
            character_id = claims.principal_id()
    """

    def __init__(
        self,
        config: SSOConfig,
        http_client: httpx.AsyncClient | None = None,
        protocol_logger: ProtocolLogger | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Application and provider settings.
            http_client: Client for all provider requests. Not closed by SSOClient.
            protocol_logger: Protocol logger for an internally created client.
        """
        self.config = config
        self._owns_client = http_client is None
        self._http_client = http_client or LoggingAsyncClient(
            protocol_logger=protocol_logger,
            timeout=config.http_timeout,
        )
        self.key_cache = KeySetCache(
            config.discovery_url,
            ttl_seconds=config.jwks_ttl_seconds,
            timeout=config.http_timeout,
            http_client=self._http_client,
        )
        self.verifier = TokenVerifier(
            self.key_cache,
            issuer=config.issuer,
            audience=config.audience,
            algorithm=config.algorithm,
            clock_skew_seconds=config.clock_skew_seconds,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client

    def build_login_request(
        self,
        scopes: Iterable[str] | None = None,
        use_pkce: bool = False,
    ) -> AuthenticationRequest:
        """Create a login URL with the configured or the given scopes."""
        return build_login_request(
            self.config.client_id,
            self.config.client_secret,
            self.config.redirect_url,
            self.config.scopes if scopes is None else scopes,
            authorization_endpoint=self.config.authorization_endpoint,
            use_pkce=use_pkce,
        )

    async def exchange_code(self, code: str, code_verifier: str | None = None) -> AccessToken:
        """Exchange a callback code for an access token."""
        return await exchange_code(
            self.config.client_id,
            self.config.client_secret,
            code,
            token_endpoint=self.config.token_endpoint,
            redirect_url=self.config.redirect_url,
            code_verifier=code_verifier,
            http_client=self._http_client,
            auth_method=self.config.token_auth_method,
        )

    async def verify(self, raw_token: str) -> IdentityClaims:
        """Verify a token issued by the provider."""
        return await self.verifier.verify(raw_token)

    async def authenticate(self, code: str, code_verifier: str | None = None) -> IdentityClaims:
        """Exchange the callback code and verify the resulting access token."""
        token = await self.exchange_code(code, code_verifier=code_verifier)
        claims = await self.verify(token.access_token)
        logger.info(f"Authenticated {claims.name} ({claims.subject})")
        return claims

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> SSOClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
