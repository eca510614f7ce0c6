# src/spotify_auth_gateway/exceptions.py

from typing import Any, Dict, Optional

from fastapi import HTTPException


class ContentHTTPException(HTTPException):
    """
    An HTTPException whose body is `content` itself instead of `{"detail": ...}`.

    Rendered by the handler registered in `main.create_app`.
    """

    def __init__(
        self,
        status_code: int,
        content: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, headers=headers)
        self.content = content
