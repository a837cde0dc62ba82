from __future__ import annotations

import base64
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Annotated, Any, Callable, Optional, Protocol

import httpx
import jsonschema
import structlog
from mediapool_sync.core.config import Settings
from mediapool_sync.core.errors import (
    ConfigError,
    CredentialsError,
    RemoteError,
    TokenRefreshError,
    TokensExpiredError,
)
from mediapool_sync.core.json import atomic_write_json, read_json
from mediapool_sync.core.time import from_epoch_ms, parse_rfc3339, to_iso, utc_now
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    WithJsonSchema,
    field_serializer,
    field_validator,
)

from .http import json_body, send

log = structlog.get_logger(__name__)

ACCESS_TOKEN_SKEW = timedelta(seconds=10)
# the token server issues refresh tokens valid for a year
REFRESH_TOKEN_LIFETIME = timedelta(days=365)

Expiry = Annotated[
    datetime,
    WithJsonSchema({"type": ["string", "integer"], "description": "RFC 3339 or epoch millis"}),
]


class Authenticator(Protocol):
    def authorization(self) -> str: ...


class BasicAuthenticator:
    def __init__(self, user: str, password: str) -> None:
        token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
        self._header = f"Basic {token}"

    def authorization(self) -> str:
        return self._header


class TokenRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    token: str = Field(min_length=1)
    expires: Expiry

    @field_validator("expires", mode="before")
    @classmethod
    def _parse_expires(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return from_epoch_ms(v)
        if isinstance(v, str):
            return parse_rfc3339(v)
        return v

    @field_serializer("expires")
    def _ser_expires(self, v: datetime) -> str:
        return to_iso(v)


class OAuthCredentials(BaseModel):
    """
    The persisted OAuth2 credential record (camelCase on disk).
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    server: str = Field(min_length=1)
    client_id: str = Field(alias="clientId", min_length=1)
    client_secret: str = Field(alias="clientSecret")
    access_token: TokenRecord = Field(alias="accessToken")
    refresh_token: TokenRecord = Field(alias="refreshToken")

    def to_json_obj(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


CREDENTIALS_SCHEMA: dict[str, Any] = OAuthCredentials.model_json_schema(by_alias=True)


class TokenStore:
    """
    Owns the credential record shared by every request of one worker.

    `lock` serializes the check-then-refresh sequence; callers hold it while
    reading and replacing the record.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock = threading.Lock()
        self._credentials: Optional[OAuthCredentials] = None

    def current(self) -> OAuthCredentials:
        if self._credentials is None:
            self._credentials = self.load()
        return self._credentials

    def load(self) -> OAuthCredentials:
        if not self.path.is_file():
            raise CredentialsError(f"OAuth credentials file not found: {self.path}")
        try:
            raw = read_json(self.path)
        except (OSError, ValueError) as e:
            raise CredentialsError(f"OAuth credentials file unreadable: {self.path}: {e}") from e
        try:
            jsonschema.validate(instance=raw, schema=CREDENTIALS_SCHEMA)
            return OAuthCredentials.model_validate(raw)
        except jsonschema.ValidationError as e:
            raise CredentialsError(f"OAuth credentials file invalid: {self.path}: {e.message}") from e
        except ValidationError as e:
            raise CredentialsError(f"OAuth credentials file invalid: {self.path}: {e}") from e

    def replace(self, credentials: OAuthCredentials) -> None:
        """Swap in a refreshed record and persist it."""
        self._credentials = credentials
        try:
            atomic_write_json(self.path, credentials.to_json_obj())
        except OSError as e:
            # the refreshed tokens stay usable in memory
            log.error("auth.persist_failed", path=str(self.path), error=str(e))


class OAuthAuthenticator:
    def __init__(
        self,
        store: TokenStore,
        client: httpx.Client,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._client = client
        self._clock = clock

    def authorization(self) -> str:
        with self._store.lock:
            creds = self._store.current()
            now = self._clock()

            if creds.access_token.expires - now > ACCESS_TOKEN_SKEW:
                return f"Bearer {creds.access_token.token}"

            if creds.refresh_token.expires < now:
                log.error(
                    "auth.tokens_expired",
                    refresh_expired_at=to_iso(creds.refresh_token.expires),
                )
                raise TokensExpiredError(
                    f"refresh token expired at {to_iso(creds.refresh_token.expires)}"
                )

            refreshed = self._refresh(creds, now)
            self._store.replace(refreshed)
            return f"Bearer {refreshed.access_token.token}"

    def _refresh(self, creds: OAuthCredentials, now: datetime) -> OAuthCredentials:
        log.info("auth.refresh", server=creds.server)
        try:
            resp = send(
                self._client,
                method="POST",
                url=creds.server,
                headers={"Accept": "application/json"},
                data={
                    "client_id": creds.client_id,
                    "client_secret": creds.client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": creds.refresh_token.token,
                },
            )
            body = json_body(resp)
        except RemoteError as e:
            raise TokenRefreshError(f"token refresh rejected: {e}") from e

        if "status_code" in body:
            raise TokenRefreshError(f"token refresh rejected: status_code={body['status_code']}")

        try:
            access = str(body["access_token"])
            expires_in = int(body["expires_in"])
            refresh = str(body["refresh_token"])
        except (KeyError, TypeError, ValueError) as e:
            raise TokenRefreshError(f"token response incomplete: {e!r}") from e

        return creds.model_copy(
            update={
                "access_token": TokenRecord(token=access, expires=now + timedelta(seconds=expires_in)),
                "refresh_token": TokenRecord(token=refresh, expires=now + REFRESH_TOKEN_LIFETIME),
            }
        )


def make_authenticator(settings: Settings, client: httpx.Client) -> Authenticator:
    """
    Exactly one auth mode: user/password (Basic) or a credentials file
    (OAuth2 bearer).
    """
    has_basic = settings.user is not None or settings.password is not None
    has_oauth = settings.oauth_credentials_file is not None

    if has_basic and has_oauth:
        raise ConfigError("configure either user/password or oauth_credentials_file, not both")
    if has_oauth:
        return OAuthAuthenticator(TokenStore(settings.oauth_credentials_file), client)
    if settings.user is not None and settings.password is not None:
        return BasicAuthenticator(settings.user, settings.password)
    if has_basic:
        raise ConfigError("Basic auth needs both user and password")
    raise ConfigError("no authentication configured (user/password or oauth_credentials_file)")
