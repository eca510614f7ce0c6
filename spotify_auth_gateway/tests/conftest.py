"""
Pytest configuration and shared fixtures for the gateway tests.
"""

from collections.abc import AsyncGenerator, Callable, Generator

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from spotify_auth_gateway.config import Settings
from spotify_auth_gateway.main import create_app, get_token_client

TEST_CLIENT_ID = "test_client_id"
TEST_CLIENT_SECRET = "test_client_secret"
TEST_REDIRECT_URI = "http://localhost:3000/callback"


@pytest.fixture
def settings() -> Settings:
    """Fully configured settings, independent of any local .env file."""
    return Settings(
        _env_file=None,
        CLIENT_ID=TEST_CLIENT_ID,
        CLIENT_SECRET=TEST_CLIENT_SECRET,
        REDIRECT_URI=TEST_REDIRECT_URI,
        TOKEN_URL="https://accounts.example.test/api/token",
    )


@pytest.fixture
def unconfigured_settings() -> Settings:
    return Settings(_env_file=None, CLIENT_ID=None, CLIENT_SECRET=None, REDIRECT_URI=None)


@pytest.fixture
def gateway_app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def test_client(gateway_app: FastAPI) -> Generator[TestClient, None, None]:
    # Used as a context manager so the lifespan runs
    with TestClient(gateway_app) as client:
        yield client


@pytest.fixture
def token_endpoint(gateway_app: FastAPI) -> Generator[Callable, None, None]:
    """
    Routes the app's token requests to a handler instead of the provider.

    Call the fixture with `handler(request: httpx.Request) -> httpx.Response`.
    """

    def use(handler: Callable[[httpx.Request], httpx.Response]) -> None:
        async def override_get_token_client() -> AsyncGenerator[httpx.AsyncClient, None]:
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                yield client

        gateway_app.dependency_overrides[get_token_client] = override_get_token_client

    yield use
    gateway_app.dependency_overrides.clear()


@pytest.fixture
def unconfigured_client(unconfigured_settings: Settings) -> Generator[TestClient, None, None]:
    with TestClient(create_app(unconfigured_settings)) as client:
        yield client
