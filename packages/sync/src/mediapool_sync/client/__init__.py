from .auth import (
    Authenticator,
    BasicAuthenticator,
    OAuthAuthenticator,
    OAuthCredentials,
    TokenRecord,
    TokenStore,
    make_authenticator,
)
from .cookies import CookieJar, StoredCookie, parse_set_cookie
from .http import HttpStatusError, HttpTransportError, make_http_client
from .render import RenderState, RenderTask
from .rest import MediaPoolClient

__all__ = [
    "Authenticator",
    "BasicAuthenticator",
    "CookieJar",
    "HttpStatusError",
    "HttpTransportError",
    "MediaPoolClient",
    "OAuthAuthenticator",
    "OAuthCredentials",
    "RenderState",
    "RenderTask",
    "StoredCookie",
    "TokenRecord",
    "TokenStore",
    "make_authenticator",
    "make_http_client",
    "parse_set_cookie",
]
