# fastapi_oidc_bridge/main.py
from typing import Any
from typing import Callable
from typing import Dict
from typing import List

import uvicorn as uvicorn
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.responses import RedirectResponse
from starlette.responses import Response
from starlette.middleware.sessions import SessionMiddleware

from fastapi_oidc_bridge import NormalizedIdentity
from fastapi_oidc_bridge import OIDCBridge
from fastapi_oidc_bridge.auth import AuthMethod
from fastapi_oidc_bridge.auth import AuthMethodRegistry
from fastapi_oidc_bridge.auth import SettingsStore

webserver_url = "http://localhost:8000"


# In this example the host keeps its auth methods and settings in memory and
# the IdP is a local Keycloak realm.
class HostRegistry(AuthMethodRegistry):
    def __init__(self) -> None:
        self.methods: Dict[str, AuthMethod] = {}

    def register(self, auth_method: AuthMethod):
        self.methods[auth_method.auth_name] = auth_method
        return self.user_authenticated

    def unregister(self, auth_name: str) -> None:
        self.methods.pop(auth_name, None)

    @staticmethod
    def user_authenticated(
        request: Request, identity: NormalizedIdentity
    ) -> Response:
        request.session["user"] = identity.model_dump(exclude_none=True)
        return RedirectResponse(url="/", status_code=303)


class HostSettings(SettingsStore):
    def __init__(self) -> None:
        self.values: Dict[str, Any] = {
            "discover-url": "http://localhost:8080/realms/example-realm/.well-known/openid-configuration",  # noqa
            "client-id": "example-public-client",
        }
        self.listeners: List[Callable[[], None]] = []

    def register_setting(self, definition) -> None:
        if definition.default is not None:
            self.values.setdefault(definition.name, definition.default)

    async def get_settings(self) -> Dict[str, Any]:
        return dict(self.values)

    def on_settings_change(self, callback: Callable[[], None]) -> None:
        self.listeners.append(callback)


registry = HostRegistry()
bridge = OIDCBridge(webserver_url, registry, HostSettings())

app = FastAPI()
app.add_middleware(SessionMiddleware, secret_key="secret", max_age=24 * 60 * 60)
app.include_router(bridge.router)


@app.on_event("startup")
async def startup() -> None:
    await bridge.register()


@app.on_event("shutdown")
async def shutdown() -> None:
    await bridge.unregister()


@app.get("/login/{auth_name}")
async def login(auth_name: str, request: Request) -> Response:
    auth_method = registry.methods.get(auth_name)
    if auth_method is None:
        return RedirectResponse(url="/login?externalAuthError=true")
    return await auth_method.on_auth_request(request)


@app.get("/")
async def root(request: Request) -> JSONResponse:
    return JSONResponse({"user": request.session.get("user")})

if __name__ == '__main__':
    uvicorn.run(app)
