"""Client configuration resolution.

Resolution order for the server: --server > FSTN_SERVER > credential file
default > built-in default. For the profile: --user > FSTN_USER > "default".
"""

import os
import urllib.parse
from typing import Optional

from pydantic import BaseModel

from .constants import DEFAULT_PROFILE, DEFAULT_SERVER, PROFILE_ENV, SERVER_ENV, TIMEOUT_ENV
from .credentials import CredentialStore
from .errors import ConfigError


class ClientConfig(BaseModel):
    """Where to connect and which stored login to use."""

    server: str
    profile: str = DEFAULT_PROFILE
    timeout: Optional[float] = None  # None blocks until the server answers


def _read_timeout() -> Optional[float]:
    raw = os.environ.get(TIMEOUT_ENV, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{TIMEOUT_ENV} must be a number of seconds, got '{raw}'")


def resolve_config(
    server: Optional[str] = None,
    profile: Optional[str] = None,
    store: Optional[CredentialStore] = None,
) -> ClientConfig:
    """Build the ClientConfig for this invocation.

    Args:
        server: --server option, if given
        profile: --user option, if given
        store: Credential store consulted for a default server

    Returns:
        ClientConfig with a normalized server URL
    """
    store = store or CredentialStore()
    chosen = (
        server
        or os.environ.get(SERVER_ENV)
        or store.default_server()
        or DEFAULT_SERVER
    )
    parts = urllib.parse.urlsplit(chosen)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(
            f"Server must be an http(s) URL such as {DEFAULT_SERVER}, got '{chosen}'"
        )
    return ClientConfig(
        server=chosen.rstrip("/"),
        profile=profile or os.environ.get(PROFILE_ENV) or DEFAULT_PROFILE,
        timeout=_read_timeout(),
    )


__all__ = ["ClientConfig", "resolve_config"]
