# src/spotify_auth_gateway/schemas.py

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class TokenResponse(BaseModel):
    """
    Token fields relayed from the provider's token endpoint.
    Nothing here is stored. Values are untyped so whatever JSON the provider sent
    is passed on as received.
    """
    model_config = ConfigDict(extra="ignore")

    access_token: Any = None
    token_type: Any = None
    scope: Any = None
    expires_in: Any = None
    refresh_token: Any = None


class TokenSuccess(TokenResponse):
    success: bool


class ErrorResponse(BaseModel):
    # Dumped with exclude_unset: `success` and `state` only appear when assigned
    success: Optional[bool] = None
    error: Any
    message: str
    state: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str


class RootResponse(BaseModel):
    name: str
    endpoints: Dict[str, str]
