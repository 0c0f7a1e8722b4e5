"""FastAPI application exposing the messenger controller over HTTP."""

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pairchat.api.auth.base import AuthProvider
from pairchat.api.auth.bearer import BearerTokenAuth
from pairchat.chat.data_models import ThreadMessage
from pairchat.config import Settings
from pairchat.contacts.data_models import Contact
from pairchat.controller import MessengerController
from pairchat.database.data_models.message import Message
from pairchat.database.data_models.profile import Profile, ProfileMatch
from pairchat.errors import (
    AddContactError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    HandleAllocationError,
    NotFoundError,
    PairChatError,
    RateLimitError,
    TransientError,
    ValidationError,
)
from pairchat.utils.logging import setup_logging

# Most specific first; the first matching class wins.
_STATUS_CODES: list[tuple[type[PairChatError], int]] = [
    (HandleAllocationError, 503),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (RateLimitError, 429),
    (TransientError, 503),
    (ValidationError, 400),
]


class NameUpdate(BaseModel):
    name: str


class UidResponse(BaseModel):
    uid: str


class AddContactRequest(BaseModel):
    uid: str


class SendMessageRequest(BaseModel):
    receiver_id: str
    content: str
    reply_to_id: str | None = None


class EditMessageRequest(BaseModel):
    content: str


class RemovedResponse(BaseModel):
    removed: bool


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    status = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    body: dict[str, str] = {"detail": str(exc)}
    if isinstance(exc, AddContactError):
        body.update(reason=exc.reason.value, title=exc.title)
    return JSONResponse(status_code=status, content=body)


def create_app(
    controller: MessengerController | None = None,
    settings: Settings | None = None,
    auth: AuthProvider | None = None,
) -> FastAPI:
    settings = settings or (controller.settings if controller else Settings.from_env())
    setup_logging(settings.log_level)
    controller = controller or MessengerController.in_memory(settings)
    auth = auth or BearerTokenAuth(controller)
    current_user = Depends(auth.get_current_user_id)

    app = FastAPI(title="pairchat", version="0.1.0")
    app.add_exception_handler(PairChatError, _error_response)
    auth.bind_to_app(app)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/directory/{uid}", response_model=ProfileMatch)
    async def lookup(uid: str, user_id: str = current_user) -> ProfileMatch:
        match = await controller.lookup(uid)
        if match is None:
            raise NotFoundError("No user exists with that UID.")
        return match

    @app.get("/profile", response_model=Profile)
    async def get_profile(user_id: str = current_user) -> Profile:
        return await controller.get_profile(user_id)

    @app.patch("/profile", response_model=Profile)
    async def update_profile(body: NameUpdate, user_id: str = current_user) -> Profile:
        return await controller.update_name(user_id, body.name)

    @app.post("/profile/uid", response_model=UidResponse)
    async def regenerate_uid(user_id: str = current_user) -> UidResponse:
        return UidResponse(uid=await controller.regenerate_uid(user_id))

    @app.get("/contacts", response_model=list[Contact])
    async def list_contacts(user_id: str = current_user) -> list[Contact]:
        return await controller.list_contacts(user_id)

    @app.post("/contacts", response_model=Contact, status_code=201)
    async def add_contact(body: AddContactRequest, user_id: str = current_user) -> Contact:
        return await controller.add_contact(user_id, body.uid)

    @app.delete("/contacts/{contact_id}", response_model=RemovedResponse)
    async def remove_contact(contact_id: str, user_id: str = current_user) -> RemovedResponse:
        return RemovedResponse(removed=await controller.remove_contact(user_id, contact_id))

    @app.get("/threads/{peer_id}", response_model=list[ThreadMessage])
    async def get_thread(peer_id: str, user_id: str = current_user) -> list[ThreadMessage]:
        return await controller.get_thread(user_id, peer_id)

    @app.post("/messages", response_model=Message, status_code=201)
    async def send_message(body: SendMessageRequest, user_id: str = current_user) -> Message:
        return await controller.send_message(user_id, body.receiver_id, body.content, body.reply_to_id)

    @app.patch("/messages/{message_id}", response_model=Message)
    async def edit_message(message_id: str, body: EditMessageRequest, user_id: str = current_user) -> Message:
        return await controller.edit_message(user_id, message_id, body.content)

    @app.delete("/messages/{message_id}", response_model=RemovedResponse)
    async def delete_message(message_id: str, user_id: str = current_user) -> RemovedResponse:
        return RemovedResponse(removed=await controller.delete_message(user_id, message_id))

    return app
