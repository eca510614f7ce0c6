# src/spotify_auth_gateway/config.py

from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional, Union

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env is at the service root, two levels up from src/spotify_auth_gateway/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

REQUIRED_CREDENTIALS = ("CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URI")


def load_env_file(env_file_path: Path = ENV_FILE_PATH) -> bool:
    """
    Loads the service .env file into the process environment.
    Variables already present in the environment take precedence.
    Runs before logging is configured, so the outcome is logged at app startup instead.
    """
    if env_file_path.exists():
        load_dotenv(dotenv_path=env_file_path, override=False)
        return True
    return False


class Settings(BaseSettings):
    # === Provider application credentials ===
    # The SPOTIFY_ prefixed names are accepted for existing deployments.
    CLIENT_ID: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CLIENT_ID", "SPOTIFY_CLIENT_ID")
    )
    CLIENT_SECRET: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CLIENT_SECRET", "SPOTIFY_CLIENT_SECRET")
    )
    REDIRECT_URI: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("REDIRECT_URI", "SPOTIFY_REDIRECT_URI")
    )

    # === Provider endpoints ===
    PROVIDER_NAME: str = "Spotify"
    AUTHORIZE_URL: str = "https://accounts.spotify.com/authorize"
    TOKEN_URL: str = "https://accounts.spotify.com/api/token"

    # === Server ===
    APP_NAME: str = "spotify-auth-gateway"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    # Pydantic sees this as a string from the env, the validator turns it into List[str]
    CORS_ORIGINS: Union[str, List[str]] = ["*"]

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URI", mode="before")
    @classmethod
    def blank_as_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_comma_separated_origins(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple)):
            return list(v)
        raise TypeError("CORS_ORIGINS: Expected a comma-separated string or a list.")

    def missing_credentials(self) -> List[str]:
        return [name for name in REQUIRED_CREDENTIALS if not getattr(self, name)]

    @property
    def is_configured(self) -> bool:
        return not self.missing_credentials()


@lru_cache
def get_settings() -> Settings:
    load_env_file()
    return Settings()
