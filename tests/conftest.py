import asyncio

import pytest
from fastapi import FastAPI
from fastapi import Request
from fastapi.testclient import TestClient
from starlette.responses import RedirectResponse

from fastapi_oidc_bridge import OIDCBridge
from fastapi_oidc_bridge.bridge.config_manager import AUTH_NAME
from tests.utils import CLIENT_ID
from tests.utils import CLIENT_SECRET
from tests.utils import DISCOVER_URL
from tests.utils import WEBSERVER_URL
from tests.utils import FakeIdP
from tests.utils import FakeRegistry
from tests.utils import FakeSettingsStore


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def settings_store():
    return FakeSettingsStore(
        {
            "discover-url": DISCOVER_URL,
            "client-id": CLIENT_ID,
            "client-secret": CLIENT_SECRET,
        }
    )


@pytest.fixture
def idp(mocker):
    return FakeIdP().install(mocker)


@pytest.fixture
def bridge(registry, settings_store, idp):
    bridge = OIDCBridge(WEBSERVER_URL, registry, settings_store)
    asyncio.run(bridge.register())
    yield bridge


@pytest.fixture
def client(bridge, registry):
    app = FastAPI()
    app.include_router(bridge.router)

    @app.get("/login/openid")
    async def login(request: Request):
        auth_method = registry.methods.get(AUTH_NAME)
        if auth_method is None:
            return RedirectResponse(url="/login?externalAuthError=true")
        return await auth_method.on_auth_request(request)

    yield TestClient(app, follow_redirects=False)
