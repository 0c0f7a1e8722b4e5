from fastapi import FastAPI, Request
from pydantic import BaseModel

from pairchat.api.auth.base import AuthProvider
from pairchat.auth.base import Session
from pairchat.controller import MessengerController
from pairchat.errors import AuthenticationError


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    confirm_password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    token: str
    user_id: str
    expires_at: int

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(token=session.token, user_id=session.user_id, expires_at=session.expires_at)


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Missing bearer token")
    return token


class BearerTokenAuth(AuthProvider):
    def __init__(self, controller: MessengerController) -> None:
        self.controller = controller

    async def get_current_user_id(self, request: Request) -> str:
        return await self.controller.authenticate(_bearer_token(request))

    def bind_to_app(self, app: FastAPI) -> None:
        controller = self.controller

        @app.post("/auth/register", response_model=SessionResponse, status_code=201)
        async def register(body: RegisterRequest) -> SessionResponse:
            session = await controller.register(body.name, body.email, body.password, body.confirm_password)
            return SessionResponse.from_session(session)

        @app.post("/auth/login", response_model=SessionResponse)
        async def login(body: LoginRequest) -> SessionResponse:
            return SessionResponse.from_session(await controller.sign_in(body.email, body.password))

        @app.post("/auth/logout", status_code=204)
        async def logout(request: Request) -> None:
            await controller.sign_out(_bearer_token(request))

        @app.get("/auth/session", response_model=SessionResponse)
        async def current_session(request: Request) -> SessionResponse:
            session = await controller.identity_provider.get_session(_bearer_token(request))
            return SessionResponse.from_session(session)
