from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, WebSocket, WebSocketDisconnect
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from psicochat.controller import ChatController
from psicochat.dependencies import get_controller, raise_for_failure, registry
from psicochat.exceptions import ChatError
from psicochat.schemas.chat import ChatStatus
from psicochat.schemas.contact import Contact
from psicochat.schemas.user import Role
from psicochat.schemas.views import CamelModel, ChatDetailView, ChatHeader, MessageView, NoticeView, ThreadListItem
from psicochat.services.messages import MessageOrder, OutgoingFile
from psicochat.ws import manager

router = APIRouter()


class CreateChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    psychologist_id: Optional[str] = Field(default=None, alias="idPsicologo")
    patient_id: Optional[str] = Field(default=None, alias="idPaciente")
    contact_id: Optional[str] = Field(default=None, alias="contactId")
    contact_role: Optional[str] = Field(default=None, alias="contactRole")


class CreateChatResponse(CamelModel):
    chat: Optional[ChatHeader] = None
    notices: List[NoticeView] = Field(default_factory=list)


class UpdateStatusRequest(BaseModel):
    estado: ChatStatus


class SendTextRequest(BaseModel):
    content: str


def _notices(controller: ChatController) -> List[NoticeView]:
    return [NoticeView(level=n.level, text=n.text) for n in controller.take_notices()]


@router.get("", response_model=List[ThreadListItem])
async def list_chats(controller: ChatController = Depends(get_controller)):
    items = await controller.load_threads()
    if items is None:
        raise_for_failure(controller)
    return items


@router.post("", response_model=CreateChatResponse)
async def create_or_get_chat(body: CreateChatRequest, controller: ChatController = Depends(get_controller)):
    if body.contact_id:
        try:
            role = Role.parse(body.contact_role)
        except ChatError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        contact = Contact(id=body.contact_id, display_name="", role=role)
        thread = await controller.select_contact(contact)
    else:
        thread = await controller.create_or_get(body.psychologist_id, body.patient_id)

    if thread is None and controller.last_error is not None:
        raise_for_failure(controller)
    return CreateChatResponse(
        chat=controller.header(thread) if thread is not None else None,
        notices=_notices(controller),
    )


@router.delete("/messages/{message_id}")
async def delete_message(message_id: str, controller: ChatController = Depends(get_controller)):
    chat_id = controller.chat_of_message(message_id)
    if chat_id is None:
        raise HTTPException(status_code=404, detail="Message not found in any open chat")
    if not await controller.delete_message(chat_id, message_id):
        raise_for_failure(controller)
    return {"success": True}


@router.get("/{chat_id}", response_model=ChatDetailView)
async def get_chat(chat_id: str, controller: ChatController = Depends(get_controller)):
    detail = await controller.open_chat(chat_id)
    if detail is None:
        raise_for_failure(controller)
    return detail


@router.put("/{chat_id}/status", response_model=ChatHeader)
async def update_chat_status(chat_id: str, body: UpdateStatusRequest, controller: ChatController = Depends(get_controller)):
    thread = await controller.change_status(chat_id, body.estado)
    if thread is None:
        raise_for_failure(controller)
    return controller.header(thread)


@router.get("/{chat_id}/messages", response_model=List[MessageView])
async def list_messages(
    chat_id: str,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    order: MessageOrder = MessageOrder.ASC,
    controller: ChatController = Depends(get_controller),
):
    messages = await controller.load_messages(chat_id, page=page, limit=limit, order=order)
    if messages is None:
        raise_for_failure(controller)
    return messages


@router.post("/{chat_id}/messages", response_model=MessageView)
async def send_message(chat_id: str, body: SendTextRequest, controller: ChatController = Depends(get_controller)):
    message = await controller.send_text(chat_id, body.content)
    if message is None:
        raise_for_failure(controller)
    return controller.message_view(chat_id, message)


@router.post("/{chat_id}/messages/file", response_model=MessageView)
async def send_file(
    chat_id: str,
    archivo: UploadFile = File(...),
    controller: ChatController = Depends(get_controller),
):
    upload = OutgoingFile(
        filename=archivo.filename or "archivo",
        content=await archivo.read(),
        mime_type=archivo.content_type,
    )
    message = await controller.send_file(chat_id, upload)
    if message is None:
        raise_for_failure(controller)
    return controller.message_view(chat_id, message)


@router.websocket("/{chat_id}/ws")
async def chat_subscription(websocket: WebSocket, chat_id: str, token: str = Query(default="")):
    """Subscribe to one chat. New messages are pushed as `chat:new_message` events."""
    await websocket.accept()
    try:
        controller = registry.get_or_create(token)
    except ChatError:
        await websocket.close(code=1008)
        return

    # Also confirms the caller can see this chat
    if await controller.open_chat(chat_id) is None:
        await websocket.close(code=1008)
        return

    subscription = await manager.connect(chat_id, websocket, controller)
    try:
        while True:
            # Keep connection alive; clients do not send anything yet
            await websocket.receive_text()
    except WebSocketDisconnect:
        await manager.disconnect(subscription)
