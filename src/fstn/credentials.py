"""Credential file storage.

Tokens live in a TOML file under the per-user config directory, keyed by
server endpoint and then by profile name:

    [global]
    server = "https://faasten.princeton.systems"

    ["https://faasten.princeton.systems".default]
    token = "..."
    user = "alice"

Older files store the token directly as a string (``profile = "token"``),
either under the server table or at top level; those are still read.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
import logging
import os
import tomllib

import platformdirs
import portalocker
import tomli_w
from pydantic import BaseModel, ValidationError

from .atomic import atomic_write_bytes
from .constants import APP_NAME, CONFIG_DIR_ENV, CREDENTIALS_FILE, GLOBAL_SECTION
from .errors import ConfigError

logger = logging.getLogger(__name__)


def default_config_dir() -> Path:
    """Per-user config directory (``~/.config/fstn`` on Linux)."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path(platformdirs.user_config_dir(APP_NAME))


class CredentialEntry(BaseModel):
    """One stored login: token plus what the client knows about it."""

    token: str
    user: Optional[str] = None
    expires_at: Optional[datetime] = None


class CredentialStore:
    """Reads and writes the credential file."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()

    @property
    def path(self) -> Path:
        return self.config_dir / CREDENTIALS_FILE

    @property
    def lock_path(self) -> Path:
        return self.config_dir / f".{CREDENTIALS_FILE}.lock"

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Malformed credential file {self.path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read credential file {self.path}: {e}") from e

    def default_server(self) -> Optional[str]:
        """Server configured in the file, if any."""
        data = self._read()
        section = data.get(GLOBAL_SECTION)
        if isinstance(section, dict) and isinstance(section.get("server"), str):
            return section["server"]
        if isinstance(data.get("server"), str):
            return data["server"]
        return None

    def load_entry(self, server: str, profile: str) -> Optional[CredentialEntry]:
        """Find the stored login for server/profile.

        Returns:
            CredentialEntry, or None if nothing is stored for this pair
        """
        data = self._read()
        raw = None
        server_table = data.get(server)
        if isinstance(server_table, dict):
            raw = server_table.get(profile)
        if raw is None and isinstance(data.get(profile), str):
            raw = data[profile]

        if raw is None:
            logger.debug("No credential for %s/%s in %s", server, profile, self.path)
            return None
        if isinstance(raw, str):
            return CredentialEntry(token=raw)
        try:
            return CredentialEntry.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(
                f"Invalid credential entry for '{profile}' at {server} in {self.path}: {e}"
            ) from e

    def _update(self, mutate) -> None:
        """Read-modify-write the file while holding the lock."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with portalocker.Lock(str(self.lock_path), "w", timeout=30):
            data = self._read()
            mutate(data)
            try:
                atomic_write_bytes(self.path, tomli_w.dumps(data).encode("utf-8"), mode=0o600)
            except OSError as e:
                raise ConfigError(f"Cannot write credential file {self.path}: {e}") from e

    def save_entry(self, server: str, profile: str, entry: CredentialEntry) -> None:
        """Store entry for server/profile, keeping every other entry."""
        def mutate(data: Dict[str, Any]) -> None:
            table = data.get(server)
            if not isinstance(table, dict):
                table = {}
                data[server] = table
            table[profile] = entry.model_dump(exclude_none=True)

        self._update(mutate)
        logger.debug("Saved credential for %s/%s to %s", server, profile, self.path)

    def set_default_server(self, server: str) -> None:
        def mutate(data: Dict[str, Any]) -> None:
            section = data.get(GLOBAL_SECTION)
            if not isinstance(section, dict):
                section = {}
                data[GLOBAL_SECTION] = section
            section["server"] = server

        self._update(mutate)


__all__ = ["CredentialEntry", "CredentialStore", "default_config_dir"]
