"""Store client: value and blob operations against a Faasten server.

Values (get/set) are stored as-is under a key. Blobs (put/fetch) live in a
content-addressed space; the key only holds the blob's content id, so
``get`` on a blob-backed key returns that id and only ``fetch`` resolves it
to bytes. Which semantics apply is decided by the operation alone, never by
what a payload looks like.

All store operations go through the user's fsutil gate:

    POST {server}/faasten/invoke/home:<user,user>:fsutil
    {"op": "read", "args": {"path": ["home", "<user,user>", "notes"]}}
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union
import base64
import binascii
import json
import logging
import time
import urllib.parse

import requests

from .constants import (
    CHUNK_SIZE,
    DEFAULT_LABEL,
    FSUTIL_GATE,
    INVOKE_PATH,
    ME_PATH,
    PING_PATH,
    PING_SCHEDULER_PATH,
)
from .errors import DigestMismatchError, FstnError, IoError, NetworkError, NotFoundError
from .hashing import compute_file_digest, digest_chunks, is_content_id, matches
from .keys import Key
from .session import SessionManager
from .atomic import atomic_download
from .transport import make_http_session, parse_json, send

logger = logging.getLogger(__name__)

KeyLike = Union[str, Key]


class StoreClient:
    """Issues get/set/put/fetch for one authenticated session."""

    def __init__(
        self,
        sessions: SessionManager,
        http: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the client.

        Args:
            sessions: Session manager holding the session loaded for this run
            http: HTTP session to send requests with
            timeout: Per-request timeout in seconds (None waits forever)
        """
        self.sessions = sessions
        self.http = http or make_http_session()
        self.timeout = timeout

    @property
    def server(self) -> str:
        return self.sessions.server

    # ---- key handling ----------------------------------------------------

    def resolve_key(self, key: KeyLike) -> Key:
        """Parse key and expand ``~`` for the session's user.

        Raises:
            InvalidKeyError: If key is malformed
            NoSessionError: If no usable session is loaded
        """
        parsed = key if isinstance(key, Key) else Key.parse(key)
        return parsed.expand(self.sessions.home_user)

    # ---- wire helpers ----------------------------------------------------

    def _invoke_url(self) -> str:
        gate = self.resolve_key(FSUTIL_GATE)
        return f"{self.server}/{INVOKE_PATH}/{urllib.parse.quote(str(gate), safe=':,')}"

    def _invoke(
        self,
        op: str,
        args: Dict[str, Any],
        files: Optional[Dict[str, Any]] = None,
        stream: bool = False,
    ) -> requests.Response:
        url = self._invoke_url()
        payload = json.dumps({"op": op, "args": args})
        if files:
            request = requests.Request("POST", url, data={"payload": payload}, files=files)
        else:
            request = requests.Request(
                "POST", url, data=payload, headers={"content-type": "application/json"}
            )
        self.sessions.authorize(request)
        return send(self.http, request, timeout=self.timeout, stream=stream)

    def _invoke_json(self, op: str, args: Dict[str, Any], **kwargs) -> Any:
        resp = self._invoke(op, args, **kwargs)
        return parse_json(resp, f"{op} via {self.server}")

    # ---- values ----------------------------------------------------------

    def get(self, key: KeyLike) -> bytes:
        """Read the payload stored at key.

        For a blob-backed key this is the content id, not the blob.

        Raises:
            NotFoundError: If the key doesn't exist
            AuthError: If the session is missing or rejected
        """
        resolved = self.resolve_key(key)
        result = self._invoke_json("read", {"path": resolved.to_path()})
        if not isinstance(result, dict) or not result.get("success"):
            raise NotFoundError(f"Key not found: {resolved}")
        try:
            return base64.b64decode(result.get("value") or "", validate=True)
        except (binascii.Error, ValueError):
            raise NetworkError(f"Server returned undecodable value for {resolved}")

    def set(self, key: KeyLike, value: bytes) -> None:
        """Overwrite the value at key with value, unmodified."""
        resolved = self.resolve_key(key)
        self._write(resolved, value)

    def _write(self, resolved: Key, value: bytes) -> None:
        result = self._invoke_json("write", {
            "path": resolved.to_path(),
            "data": base64.b64encode(value).decode("ascii"),
        })
        if not isinstance(result, dict) or not result.get("success"):
            raise NotFoundError(f"Cannot write {resolved}: key does not exist or is not writable")
        logger.debug("Wrote %d bytes to %s", len(value), resolved)

    # ---- blobs -----------------------------------------------------------

    def put(self, key: KeyLike, path: Union[str, Path]) -> str:
        """Upload a file as a blob and bind key to its content id.

        The upload is idempotent: identical bytes map to the same id. If the
        bind fails after the upload succeeded, the blob stays on the server
        unreferenced and the failure is still reported.

        Returns:
            Content id of the uploaded file

        Raises:
            IoError: If the file can't be read
            IntegrityError: If the server reports a different digest
        """
        resolved = self.resolve_key(key)
        path = Path(path)

        try:
            content_id = compute_file_digest(path)
            with path.open("rb") as f:
                result = self._invoke_json(
                    "putblob",
                    {"digest": content_id},
                    files={"blob": (path.name, f, "application/octet-stream")},
                )
        except OSError as e:
            raise IoError(path, "read", e) from e

        if not isinstance(result, dict) or not result.get("success"):
            raise FstnError(f"Server rejected blob upload for {path}")
        returned = str(result.get("digest") or content_id)
        if not matches(returned, content_id):
            raise DigestMismatchError(str(resolved), content_id, returned.strip().lower())
        logger.debug("Uploaded blob %s from %s", content_id, path)

        try:
            self._write(resolved, content_id.encode("ascii"))
        except FstnError:
            logger.warning(
                "Blob %s was uploaded but binding %s failed; the blob is left unreferenced",
                content_id, resolved,
            )
            raise
        return content_id

    def fetch(self, key: KeyLike, dest: Union[str, Path]) -> str:
        """Download the blob key refers to into dest.

        The bytes are verified against the content id before dest is
        replaced; on mismatch dest is left as it was.

        Returns:
            Content id of the downloaded blob

        Raises:
            NotFoundError: If key is absent or doesn't hold a content id
            IntegrityError: If the downloaded bytes don't match
            IoError: If dest can't be written
        """
        resolved = self.resolve_key(key)
        dest = Path(dest)

        raw = self.get(resolved)
        content_id = raw.decode("ascii", errors="replace").strip().lower()
        if not is_content_id(content_id):
            raise NotFoundError(f"{resolved} does not reference a blob")

        resp = self._invoke("getblob", {"digest": content_id}, stream=True)

        def write_fn(tmppath: Path) -> None:
            try:
                with tmppath.open("wb") as out:
                    actual = digest_chunks(resp.iter_content(CHUNK_SIZE), out)
            except requests.exceptions.RequestException as e:
                raise NetworkError(f"Download of blob {content_id} interrupted: {e}") from e
            if not matches(actual, content_id):
                raise DigestMismatchError(str(resolved), content_id, actual)

        try:
            with resp:
                atomic_download(write_fn, dest)
        except OSError as e:
            raise IoError(dest, "write", e) from e
        logger.debug("Fetched blob %s to %s", content_id, dest)
        return content_id

    # ---- namespace -------------------------------------------------------

    def ls(self, key: KeyLike) -> Any:
        """List the entries under a directory key."""
        resolved = self.resolve_key(key)
        return self._invoke_json("ls", {"path": resolved.to_path()})

    def _entry_op(self, op: str, base: KeyLike, name: str, **extra: Any) -> Any:
        resolved = self.resolve_key(base)
        Key.validate_name(name)
        args = {"base": resolved.to_path(), "name": name, **extra}
        result = self._invoke_json(op, args)
        if isinstance(result, dict) and result.get("success") is False:
            target = f"{resolved}:{name}"
            if op == "unlink":
                raise NotFoundError(f"Cannot unlink {target}: no such entry")
            raise FstnError(f"Server refused {op} of {target}")
        logger.debug("%s %s under %s", op, name, resolved)
        return result

    def mkdir(self, base: KeyLike, name: str, label: str = DEFAULT_LABEL) -> Any:
        """Create directory name under base.

        Raises:
            InvalidKeyError: If base or name is malformed
            FstnError: If the server refuses to create the entry
        """
        return self._entry_op("mkdir", base, name, label=label)

    def mkfile(self, base: KeyLike, name: str, label: str = DEFAULT_LABEL) -> Any:
        """Create an empty file name under base; set() can then write it."""
        return self._entry_op("mkfile", base, name, label=label)

    def unlink(self, base: KeyLike, name: str) -> Any:
        """Remove entry name from directory base.

        Only the link goes away; a blob the entry pointed at stays in the
        content-addressed space.

        Raises:
            NotFoundError: If the server reports nothing was unlinked
        """
        return self._entry_op("unlink", base, name)

    # ---- misc ------------------------------------------------------------

    def whoami(self) -> Any:
        """Ask the server who the session's token belongs to."""
        url = f"{self.server}/{ME_PATH}"
        request = self.sessions.authorize(requests.Request("GET", url))
        return parse_json(send(self.http, request, timeout=self.timeout), url)

    def _time_get(self, path: str) -> float:
        url = f"{self.server}/{path}"
        start = time.perf_counter()
        send(self.http, requests.Request("GET", url), timeout=self.timeout).close()
        return time.perf_counter() - start

    def ping(self) -> float:
        """Round-trip time to the server gateway in seconds (no auth)."""
        return self._time_get(PING_PATH)

    def ping_scheduler(self) -> float:
        """Round-trip time to the scheduler, through the gateway (no auth)."""
        return self._time_get(PING_SCHEDULER_PATH)

    def close(self) -> None:
        """Release pooled connections held by the HTTP session."""
        self.http.close()


__all__ = ["StoreClient"]
