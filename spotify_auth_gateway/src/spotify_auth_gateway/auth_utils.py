# src/spotify_auth_gateway/auth_utils.py

import logging
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

# Scopes requested from the provider
SCOPES = [
    "user-read-private",
    "user-read-email",
    "playlist-read-private",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-library-read",
    "user-top-read",
    "user-read-playback-state",
    "user-modify-playback-state",
]


class TokenRequestError(Exception):
    """The token endpoint could not be reached or did not answer with a JSON object."""


class ProviderError(Exception):
    def __init__(self, error: Any, error_description: Optional[str] = None):
        self.error = error
        self.error_description = error_description
        super().__init__(error_description or f"Provider returned error: {error}")


def generate_state(length: int = 16) -> str:
    """
    Random hex string sent along with the authorization request.
    It is not stored, so the callback cannot check it.
    """
    return secrets.token_hex(length)


# --- Authorization Code Flow Functions ---

def build_auth_url(settings: Settings, state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": settings.CLIENT_ID,
        "scope": " ".join(SCOPES),
        "redirect_uri": settings.REDIRECT_URI,
        "state": state,
    }
    auth_url = f"{settings.AUTHORIZE_URL}?{urlencode(params)}"
    logger.debug(f"AUTH_UTILS: build_auth_url - Redirect URI: {settings.REDIRECT_URI}")
    return auth_url


async def request_tokens(
    settings: Settings,
    form: Dict[str, str],
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    POSTs `form` to the provider's token endpoint using HTTP Basic client authentication.

    Returns the decoded JSON body when it carries no `error` field.
    Raises ProviderError when the provider reports an error (whatever the HTTP status),
    and TokenRequestError when the request fails or the body is not a JSON object.
    """
    auth = (settings.CLIENT_ID, settings.CLIENT_SECRET)
    grant_type = form.get("grant_type")
    try:
        if client is None:
            async with httpx.AsyncClient() as owned_client:
                response = await owned_client.post(settings.TOKEN_URL, data=form, auth=auth)
        else:
            response = await client.post(settings.TOKEN_URL, data=form, auth=auth)
    except httpx.HTTPError as e:
        logger.warning(f"AUTH_UTILS: request_tokens - Transport error for grant '{grant_type}': {e!r}")
        raise TokenRequestError(str(e) or e.__class__.__name__) from e

    try:
        data = response.json()
    except ValueError as e:
        logger.warning(
            f"AUTH_UTILS: request_tokens - Invalid JSON from token endpoint (HTTP {response.status_code})"
        )
        raise TokenRequestError(f"Invalid JSON response from token endpoint: {e}") from e

    if not isinstance(data, dict):
        raise TokenRequestError("Token endpoint returned an unexpected response body.")

    if data.get("error"):
        logger.info(
            f"AUTH_UTILS: request_tokens - Provider error for grant '{grant_type}': {data.get('error')}"
        )
        raise ProviderError(data["error"], data.get("error_description"))

    logger.debug(f"AUTH_UTILS: request_tokens - Grant '{grant_type}' succeeded (HTTP {response.status_code})")
    return data


async def exchange_code_for_tokens(
    settings: Settings,
    code: str,
    redirect_uri: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri or settings.REDIRECT_URI,
    }
    return await request_tokens(settings, form, client=client)


async def refresh_access_token(
    settings: Settings,
    refresh_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    form = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
    }
    return await request_tokens(settings, form, client=client)
