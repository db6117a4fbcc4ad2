# src/buckle/utils.py
import importlib.metadata
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from buckle.constants import GITHUB_API_TIMEOUT, GITHUB_TOKEN_ENV_VAR
from buckle.log_utils import logger

# Cache for the User-Agent string to avoid repeated metadata lookups
_USER_AGENT_CACHE = None


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `buckle/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version("buckle")
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"

        _USER_AGENT_CACHE = f"buckle/{app_version}"

    return _USER_AGENT_CACHE


def create_session() -> requests.Session:
    """Create the HTTP session shared by every request in one launcher run."""
    session = requests.Session()
    session.headers["User-Agent"] = get_user_agent()
    return session


def get_effective_github_token(
    github_token: Optional[str], allow_env_token: bool = True
) -> Optional[str]:
    """
    Determine the GitHub token to use, preferring the explicit argument over the environment.

    Parameters:
        github_token (Optional[str]): Explicit token to use; leading and trailing whitespace are ignored.
        allow_env_token (bool): If True, fall back to the `GITHUB_TOKEN` environment variable when no explicit token is provided.

    Returns:
        Optional[str]: The chosen token with surrounding whitespace removed, or `None` if no token is available.
    """
    candidate = (github_token or "").strip()
    if candidate:
        return candidate
    if not allow_env_token:
        return None
    env_token = os.environ.get(GITHUB_TOKEN_ENV_VAR)
    return env_token.strip() if env_token else None


def make_github_api_request(
    session: requests.Session,
    url: str,
    github_token: Optional[str] = None,
    params: Optional[Dict[str, Any]] = None,
    timeout: Any = GITHUB_API_TIMEOUT,
) -> requests.Response:
    """
    Perform a GitHub API GET request with optional token authentication.

    Parameters:
        session (requests.Session): Session used for the request.
        url (str): GitHub API URL to request.
        github_token (Optional[str]): Explicit token; falls back to the GITHUB_TOKEN environment variable.
        params (Optional[Dict[str, Any]]): Query parameters to include in the request.
        timeout: Request timeout in seconds, or a (connect, read) tuple.

    Returns:
        requests.Response: The successful HTTP response.

    Raises:
        requests.HTTPError: For HTTP error responses; rate-limit 403s carry a descriptive message.
        requests.RequestException: For lower-level network or request errors.
    """
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }

    effective_token = get_effective_github_token(github_token)
    if effective_token:
        headers["Authorization"] = f"token {effective_token}"
        logger.debug("Using GitHub token for API authentication")

    logger.debug(f"Making GitHub API request: {url}")
    response = session.get(url, timeout=timeout, headers=headers, params=params)
    try:
        response.raise_for_status()
    except requests.HTTPError as e:
        if e.response is not None and e.response.status_code == 403:
            remaining = e.response.headers.get("X-RateLimit-Remaining")
            if remaining == "0":
                reset_time = e.response.headers.get("X-RateLimit-Reset")
                reset_time_str = (
                    datetime.fromtimestamp(int(reset_time), timezone.utc).strftime(
                        "%Y-%m-%d %H:%M:%S UTC"
                    )
                    if reset_time and reset_time.isdigit()
                    else "unknown"
                )
                error_msg = (
                    f"GitHub API rate limit exceeded. Resets at {reset_time_str}. "
                    f"Set {GITHUB_TOKEN_ENV_VAR} environment variable for higher rate limits."
                )
                raise requests.HTTPError(error_msg, response=e.response) from None
        raise

    return response
