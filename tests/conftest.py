"""Pytest configuration and fixtures.

``FakeProvider`` stands in for the identity provider: it serves the
discovery document, the JWKS and the token endpoint over an
``httpx.MockTransport`` and mints tokens signed with its keys.
"""

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jwt.algorithms import ECAlgorithm, RSAAlgorithm

from evesso.core.logging import LoggingAsyncClient, ProtocolLogger

ISSUER = "https://login.eveonline.com"
AUDIENCE = "EVE Online"
DISCOVERY_URL = "https://idp.example/.well-known/oauth-authorization-server"
JWKS_URI = "https://idp.example/keys"
AUTHORIZE_URL = "https://idp.example/v2/oauth/authorize"
TOKEN_URL = "https://idp.example/v2/oauth/token"


def public_jwk(private_key: Any, kid: str, alg: str) -> dict[str, Any]:
    """Public half of a private key as a JWKS entry."""
    public_key = private_key.public_key()
    if isinstance(public_key, rsa.RSAPublicKey):
        jwk = json.loads(RSAAlgorithm.to_jwk(public_key))
    else:
        jwk = json.loads(ECAlgorithm.to_jwk(public_key))
    jwk.update({"kid": kid, "alg": alg, "use": "sig"})
    return jwk


Handler = Callable[[httpx.Request], httpx.Response]


class FakeProvider:
    """In-memory identity provider."""

    issuer = ISSUER
    audience = AUDIENCE
    discovery_url = DISCOVERY_URL
    jwks_uri = JWKS_URI
    authorization_endpoint = AUTHORIZE_URL
    token_endpoint = TOKEN_URL

    def __init__(self, private_key: Any, kid: str = "k1", alg: str = "RS256") -> None:
        self.private_key = private_key
        self.kid = kid
        self.alg = alg
        self.metadata: dict[str, Any] = {
            "issuer": "login.eveonline.com",
            "jwks_uri": JWKS_URI,
            "authorization_endpoint": AUTHORIZE_URL,
            "token_endpoint": TOKEN_URL,
            "code_challenge_methods_supported": ["S256"],
        }
        self.jwks: dict[str, Any] = {
            "SkipUnresolvedJsonWebKeys": True,
            "keys": [public_jwk(private_key, kid, alg)],
        }
        self.requests: list[httpx.Request] = []
        self.overrides: dict[str, Handler] = {}
        self.delay = 0.0
        self.token_subject = "CHARACTER:EVE:12345"

    def add_key(self, private_key: Any, kid: str, alg: str = "RS256") -> None:
        self.jwks["keys"].append(public_jwk(private_key, kid, alg))

    def count(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)

    def claims(self, **overrides: Any) -> dict[str, Any]:
        now = datetime.now(UTC)
        claims: dict[str, Any] = {
            "scp": ["publicData", "esi-skills.read_skills.v1"],
            "jti": "8d7c2c2e-6d3f-4c7e-9a8b-1f2e3d4c5b6a",
            "kid": "JWT-Signature-Key",
            "sub": self.token_subject,
            "azp": "my-client-id",
            "tenant": "tranquility",
            "tier": "live",
            "region": "world",
            "aud": [AUDIENCE, "my-client-id"],
            "name": "Test Pilot",
            "owner": "owner-hash=",
            "exp": int((now + timedelta(minutes=20)).timestamp()),
            "iat": int(now.timestamp()),
            "iss": ISSUER,
        }
        for key, value in overrides.items():
            if value is None:
                claims.pop(key, None)
            else:
                claims[key] = value
        return claims

    def mint(
        self,
        private_key: Any = None,
        kid: str | None = None,
        alg: str | None = None,
        **claim_overrides: Any,
    ) -> str:
        """Sign a token; claim overrides set to None are removed."""
        headers = {"kid": kid or self.kid}
        return jwt.encode(
            self.claims(**claim_overrides),
            private_key if private_key is not None else self.private_key,
            algorithm=alg or self.alg,
            headers=headers,
        )

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        url = str(request.url)
        if url in self.overrides:
            return self.overrides[url](request)
        if url == DISCOVERY_URL:
            return httpx.Response(200, json=self.metadata)
        if url == JWKS_URI:
            return httpx.Response(200, json=self.jwks)
        if url == TOKEN_URL and request.method == "POST":
            return httpx.Response(
                200,
                json={
                    "access_token": self.mint(),
                    "token_type": "Bearer",
                    "expires_in": 1199,
                    "refresh_token": "refresh-me",
                },
            )
        return httpx.Response(404, json={"error": "not_found"})

    def client(self, protocol_logger: ProtocolLogger | None = None) -> httpx.AsyncClient:
        return LoggingAsyncClient(
            protocol_logger=protocol_logger or ProtocolLogger(),
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_rsa_private_key() -> rsa.RSAPrivateKey:
    """A key the provider never publishes."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def ec_private_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def provider(rsa_private_key: rsa.RSAPrivateKey) -> FakeProvider:
    """Provider publishing a single RS256 key with kid 'k1'."""
    return FakeProvider(rsa_private_key)
