"""HTTP plumbing shared by login and the store client.

Maps requests' exceptions and HTTP statuses onto the fstn error taxonomy.
Nothing here retries.
"""

from typing import Any, Optional
import json
import logging

import requests

from .errors import AuthError, FstnError, NetworkError, NotFoundError

logger = logging.getLogger(__name__)


def make_http_session() -> requests.Session:
    """HTTP session used for one invocation."""
    http = requests.Session()
    http.headers["User-Agent"] = "fstn"
    return http


def send(
    http: requests.Session,
    request: requests.Request,
    timeout: Optional[float] = None,
    stream: bool = False,
) -> requests.Response:
    """Send a request and fail on anything but a 2xx answer.

    Raises:
        NetworkError: On connection failures, timeouts and 5xx answers
        AuthError: On 401/403
        NotFoundError: On 404
    """
    try:
        # MissingSchema/InvalidURL surface here, before anything is sent
        prepared = http.prepare_request(request)
        logger.debug("%s %s", prepared.method, prepared.url)
        # proxies and CA bundle from the environment, as requests.request() would
        settings = http.merge_environment_settings(prepared.url, {}, stream, None, None)
        resp = http.send(prepared, timeout=timeout, **settings)
    except requests.exceptions.ConnectionError as e:
        raise NetworkError(f"Cannot connect to {request.url}: {e}") from e
    except requests.exceptions.Timeout as e:
        raise NetworkError(f"Request to {request.url} timed out: {e}") from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Request to {request.url} failed: {e}") from e

    check_status(resp, request.url)
    return resp


def check_status(resp: requests.Response, target: str) -> None:
    status = resp.status_code
    if 200 <= status < 300:
        return
    detail = _error_detail(resp)
    resp.close()
    if status in (401, 403):
        raise AuthError(
            f"Authentication failed for {target} ({status}){detail}. "
            f"Your session may have expired; run 'fstn login'."
        )
    if status == 404:
        raise NotFoundError(f"Not found: {target}{detail}")
    if status >= 500:
        raise NetworkError(f"Server error {status}: {target}{detail}")
    raise FstnError(f"Request failed with {status}: {target}{detail}")


def _error_detail(resp: requests.Response) -> str:
    try:
        text = resp.text.strip()
    except Exception:
        return ""
    return f": {text[:200]}" if text else ""


def parse_json(resp: requests.Response, target: str) -> Any:
    """Decode a JSON body, treating garbage as a transport problem."""
    try:
        return resp.json()
    except (json.JSONDecodeError, ValueError):
        content_type = resp.headers.get("content-type", "unknown")
        raise NetworkError(
            f"Server returned invalid response for {target}: "
            f"expected JSON but got {content_type}"
        )


__all__ = ["make_http_session", "send", "check_status", "parse_json"]
