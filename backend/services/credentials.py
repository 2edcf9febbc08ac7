"""
Credential pool for Google Drive access.

Holds N independent identities (service accounts, optionally one OAuth
refresh-token account) and hands out bearer tokens in round-robin slices
so quota is spread across accounts. Each identity has its own cached
token; a token is never handed out inside the safety margin before expiry.
"""
import os
import json
import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

import aiofiles
import httpx
from jose import jwt
from jose.exceptions import JOSEError

from core.config import (
    TOKEN_URL,
    DRIVE_SCOPE,
    API_TIMEOUT_MS,
    TOKEN_LIFETIME_SECONDS,
    TOKEN_SAFETY_MARGIN_SECONDS,
    SERVICE_ACCOUNTS_DIR,
    SERVICE_ACCOUNTS_JSON,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
)
from core.errors import NoCredentialsAvailable

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


@dataclass(frozen=True)
class Identity:
    """One credential-bearing account. Secrets are kept out of repr()."""

    principal: str
    private_key: str = field(default="", repr=False)
    key_id: str = ""
    kind: str = "service_account"  # or "oauth"
    client_secret: str = field(default="", repr=False)
    refresh_token: str = field(default="", repr=False)


@dataclass
class TokenEntry:
    token: str
    expires_at: float

    def is_fresh(self, now: float, margin: float = TOKEN_SAFETY_MARGIN_SECONDS) -> bool:
        return self.expires_at - now > margin


class TokenExchangeError(Exception):
    """The token endpoint rejected an assertion or refresh token."""


class CredentialPool:
    """
    Round-robin token broker over a fixed tuple of identities.

    The rotation cursor and token map are plain attributes: concurrent
    requests may interleave between awaits, and a lost cursor update only
    makes rotation slightly uneven.
    """

    def __init__(
        self,
        identities: Iterable[Identity],
        http_client: httpx.AsyncClient,
        token_url: str = TOKEN_URL,
        scope: str = DRIVE_SCOPE,
        lifetime_seconds: int = TOKEN_LIFETIME_SECONDS,
        margin_seconds: int = TOKEN_SAFETY_MARGIN_SECONDS,
        timeout_ms: int = API_TIMEOUT_MS,
        clock: Callable[[], float] = time.time,
    ):
        self.identities = tuple(identities)
        self._http = http_client
        self._token_url = token_url
        self._scope = scope
        self._lifetime = min(lifetime_seconds, 3600)
        self._margin = margin_seconds
        self._timeout = timeout_ms / 1000
        self._clock = clock
        self._tokens: Dict[str, TokenEntry] = {}
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self.identities)

    async def acquire(self, count: int = 1) -> List[str]:
        """
        Return up to `count` tokens, one per distinct identity, starting at
        the rotation cursor and wrapping around.

        Raises NoCredentialsAvailable if every identity in the slice fails.
        """
        n = len(self.identities)
        if n == 0:
            raise NoCredentialsAvailable("No Drive identities configured")

        count = max(1, min(count, n))
        start = self._cursor
        batch = [self.identities[(start + i) % n] for i in range(count)]
        # Advance by the number attempted, before awaiting, so concurrent
        # batches start from different identities.
        self._cursor = (start + count) % n

        results = await asyncio.gather(*(self._token_for(identity) for identity in batch))
        tokens = [t for t in results if t]
        if not tokens:
            principals = ", ".join(i.principal for i in batch)
            raise NoCredentialsAvailable(f"All {count} identities failed to produce a token: {principals}")
        return tokens

    async def acquire_one(self) -> str:
        tokens = await self.acquire(1)
        return tokens[0]

    def invalidate(self, principal: str) -> None:
        self._tokens.pop(principal, None)

    async def _token_for(self, identity: Identity) -> Optional[str]:
        entry = self._tokens.get(identity.principal)
        if entry and entry.is_fresh(self._clock(), self._margin):
            return entry.token

        try:
            entry = await self._mint(identity)
        except (httpx.HTTPError, asyncio.TimeoutError, JOSEError, TokenExchangeError, ValueError, KeyError) as e:
            logger.warning(f"Token refresh failed for {identity.principal}: {e!r}")
            self._tokens.pop(identity.principal, None)
            return None

        self._tokens[identity.principal] = entry
        return entry.token

    async def _mint(self, identity: Identity) -> TokenEntry:
        now = int(self._clock())
        if identity.kind == "oauth":
            form = {
                "client_id": identity.principal,
                "client_secret": identity.client_secret,
                "refresh_token": identity.refresh_token,
                "grant_type": "refresh_token",
            }
        else:
            form = {"grant_type": JWT_BEARER_GRANT, "assertion": self.build_assertion(identity, now)}

        response = await asyncio.wait_for(
            self._http.post(
                self._token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            ),
            timeout=self._timeout,
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if response.status_code != 200:
            detail = body.get("error_description") or body.get("error") or f"HTTP {response.status_code}"
            raise TokenExchangeError(str(detail))

        token = body.get("access_token")
        if not token or not isinstance(token, str):
            raise TokenExchangeError("Token response has no access_token")
        try:
            expires_in = int(body.get("expires_in") or self._lifetime)
        except (TypeError, ValueError):
            raise TokenExchangeError(f"Token response has a bad expires_in: {body.get('expires_in')!r}")
        logger.debug(f"Minted token for {identity.principal} (expires in {expires_in}s)")
        return TokenEntry(token=token, expires_at=now + expires_in)

    def build_assertion(self, identity: Identity, issued_at: int) -> str:
        """Sign the RS256 JWT assertion exchanged for an access token."""
        claims = {
            "iss": identity.principal,
            "scope": self._scope,
            "aud": self._token_url,
            "iat": issued_at,
            "exp": issued_at + self._lifetime,
        }
        headers = {"kid": identity.key_id} if identity.key_id else None
        return jwt.encode(claims, identity.private_key, algorithm="RS256", headers=headers)


# ============================================================================
# Identity loading
# ============================================================================

def identity_from_key(data: dict) -> Optional[Identity]:
    """Build an Identity from a service-account JSON key, or None if unusable."""
    if not isinstance(data, dict):
        return None
    email = data.get("client_email")
    key = data.get("private_key")
    if not email or not key:
        return None
    return Identity(principal=email, private_key=key, key_id=data.get("private_key_id", ""))


async def load_identities(
    accounts_dir: str = SERVICE_ACCOUNTS_DIR,
    inline_json: str = SERVICE_ACCOUNTS_JSON,
    client_id: str = GOOGLE_CLIENT_ID,
    client_secret: str = GOOGLE_CLIENT_SECRET,
    refresh_token: str = GOOGLE_REFRESH_TOKEN,
) -> List[Identity]:
    """
    Collect identities from every configured source.

    - *.json service-account keys in accounts_dir (sorted by filename)
    - an inline JSON list (or single object) of keys
    - one OAuth refresh-token account when all three OAuth values are set

    Unreadable or malformed keys are skipped with a warning.
    """
    identities: List[Identity] = []

    if accounts_dir and os.path.isdir(accounts_dir):
        for filename in sorted(os.listdir(accounts_dir)):
            if not filename.endswith(".json"):
                continue
            path = os.path.join(accounts_dir, filename)
            try:
                async with aiofiles.open(path, "r") as f:
                    data = json.loads(await f.read())
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable service account key {filename}: {e}")
                continue
            identity = identity_from_key(data)
            if identity is None:
                logger.warning(f"Skipping {filename}: missing client_email or private_key")
                continue
            identities.append(identity)

    if inline_json:
        try:
            data = json.loads(inline_json)
        except ValueError as e:
            logger.warning(f"SERVICE_ACCOUNTS_JSON is not valid JSON: {e}")
            data = []
        for item in data if isinstance(data, list) else [data]:
            identity = identity_from_key(item)
            if identity is None:
                logger.warning("Skipping inline service account key without client_email/private_key")
                continue
            identities.append(identity)

    if client_id and client_secret and refresh_token:
        identities.append(Identity(
            principal=client_id,
            kind="oauth",
            client_secret=client_secret,
            refresh_token=refresh_token,
        ))

    unique: Dict[str, Identity] = {}
    for identity in identities:
        unique.setdefault(identity.principal, identity)
    if len(unique) < len(identities):
        logger.warning(f"Dropped {len(identities) - len(unique)} duplicate identities")

    if not unique:
        logger.error("CRITICAL: No Google credentials configured; Drive calls will fail.")
    else:
        logger.info(f"Loaded {len(unique)} Drive identities")
    return list(unique.values())
