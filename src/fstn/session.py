"""Sessions: turning a pasted API token into an authorized client.

A Session is loaded once per invocation and never changes afterwards. The
manager only attaches the token to requests; it never inspects or refreshes
it. An expired or revoked token shows up as an AuthError from the server,
and the user has to log in again.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

import requests
from pydantic import BaseModel, ConfigDict

from .constants import DEFAULT_PROFILE, ME_PATH
from .credentials import CredentialEntry, CredentialStore
from .errors import AuthError, NetworkError, NoSessionError
from .transport import make_http_session, parse_json, send

logger = logging.getLogger(__name__)


class Session(BaseModel):
    """Authenticated context for one server."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    token: str
    user: str
    profile: str = DEFAULT_PROFILE
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= (now or datetime.now(timezone.utc))


def login(
    endpoint: str,
    token: str,
    profile: str = DEFAULT_PROFILE,
    http: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> Session:
    """Check a token against the server and build a Session from it.

    Args:
        endpoint: Server URL
        token: API token the user obtained from {endpoint}/login/cas
        profile: Local profile name to store the session under
        http: HTTP session to use (a fresh one if omitted)
        timeout: Request timeout in seconds

    Returns:
        Session for the caller to persist with save_session()

    Raises:
        AuthError: If the token is empty or rejected
        NetworkError: If the server can't be reached
    """
    token = token.strip()
    if not token:
        raise AuthError("No API token given")

    endpoint = endpoint.rstrip("/")
    url = f"{endpoint}/{ME_PATH}"
    request = requests.Request(
        "GET", url, headers={"Authorization": f"Bearer {token}"}
    )
    owned = http is None
    http = http or make_http_session()
    try:
        me = parse_json(send(http, request, timeout=timeout), url)
    finally:
        if owned:
            http.close()
    if not isinstance(me, dict):
        raise NetworkError(f"Unexpected identity response from {url}")
    user = me.get("login") or me.get("user") or profile
    logger.debug("Token for %s belongs to %s", endpoint, user)

    return Session(endpoint=endpoint, token=token, user=str(user), profile=profile)


def load_session(store: CredentialStore, server: str, profile: str) -> Optional[Session]:
    """Load the stored session for server/profile, or None."""
    entry = store.load_entry(server, profile)
    if entry is None:
        return None
    return Session(
        endpoint=server,
        token=entry.token,
        user=entry.user or profile,
        profile=profile,
        expires_at=entry.expires_at,
    )


def save_session(store: CredentialStore, session: Session) -> None:
    """Persist a session, replacing any earlier one for the same profile."""
    store.save_entry(
        session.endpoint,
        session.profile,
        CredentialEntry(
            token=session.token,
            user=session.user,
            expires_at=session.expires_at,
        ),
    )


class SessionManager:
    """Attaches the loaded session to outgoing requests."""

    def __init__(self, session: Optional[Session], server: str = "", profile: str = DEFAULT_PROFILE):
        self._session = session
        self.server = session.endpoint if session else server
        self.profile = session.profile if session else profile

    @classmethod
    def from_store(cls, store: CredentialStore, server: str, profile: str) -> "SessionManager":
        return cls(load_session(store, server, profile), server=server, profile=profile)

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def require(self) -> Session:
        """Return the session if it is usable.

        Raises:
            NoSessionError: If nothing is loaded or the session has expired
        """
        if self._session is None:
            raise NoSessionError(self.server, self.profile)
        if self._session.is_expired():
            raise NoSessionError(self.server, self.profile, reason="session expired")
        return self._session

    @property
    def home_user(self) -> str:
        return self.require().user

    def authorize(self, request: requests.Request) -> requests.Request:
        """Add the bearer token to request and return it."""
        session = self.require()
        request.headers["Authorization"] = f"Bearer {session.token}"
        return request


__all__ = ["Session", "SessionManager", "login", "load_session", "save_session"]
