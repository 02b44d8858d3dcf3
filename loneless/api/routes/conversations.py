"""
Conversation Routes
===================

Endpoints for conversations and their turns.

A turn posts the user's text (and optional attachments) and waits for the
assistant's reply. Provider failures do not turn into HTTP errors here:
the conversation receives a notice and the response carries the failure
together with the user's input for resubmission.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from loneless.api.dependencies import get_orchestrator, get_store
from loneless.api.schemas import AttachmentIn, ConversationOut, MessageOut, TurnResponse
from loneless.chat.orchestrator import ChatOrchestrator
from loneless.chat.store import ConversationNotFoundError, InMemoryConversationStore, MessageNotFoundError
from loneless.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/conversations", tags=["Conversations"])


class CreateConversationRequest(BaseModel):
    title: str = Field(default="Chat", min_length=1, max_length=100)


class ConversationListResponse(BaseModel):
    conversations: list[ConversationOut]
    total: int


class MessageListResponse(BaseModel):
    conversation_id: str
    messages: list[MessageOut]
    total: int


class TurnRequest(BaseModel):
    """User input for one turn."""

    text: str = Field(default="", max_length=10000)
    attachments: list[AttachmentIn] = Field(default_factory=list)
    system_prompt: Optional[str] = Field(
        default=None,
        description="Override of the configured system prompt for this turn",
    )


class RandomMessageResponse(BaseModel):
    sent: bool
    message: Optional[MessageOut] = None


def _not_found(error: LookupError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))


@router.post(
    "",
    response_model=ConversationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a conversation",
)
async def create_conversation(
    request: CreateConversationRequest,
    store: InMemoryConversationStore = Depends(get_store),
) -> ConversationOut:
    """Create a conversation; it starts with a greeting from the assistant."""
    conversation = store.create_conversation(request.title)
    return ConversationOut.from_conversation(conversation)


@router.get(
    "",
    response_model=ConversationListResponse,
    summary="List conversations",
)
async def list_conversations(
    store: InMemoryConversationStore = Depends(get_store),
) -> ConversationListResponse:
    conversations = [ConversationOut.from_conversation(c) for c in store.list_conversations()]
    return ConversationListResponse(conversations=conversations, total=len(conversations))


@router.get(
    "/{conversation_id}/messages",
    response_model=MessageListResponse,
    summary="Get conversation messages",
)
async def get_messages(
    conversation_id: str,
    limit: Optional[int] = None,
    store: InMemoryConversationStore = Depends(get_store),
) -> MessageListResponse:
    try:
        history = store.get_history(conversation_id, limit=limit)
    except ConversationNotFoundError as e:
        raise _not_found(e)
    messages = [MessageOut.from_message(m) for m in history]
    return MessageListResponse(conversation_id=conversation_id, messages=messages, total=len(messages))


@router.delete(
    "/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a conversation",
)
async def delete_conversation(
    conversation_id: str,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    store: InMemoryConversationStore = Depends(get_store),
) -> None:
    """Delete a conversation, cancelling a turn still running for it."""
    try:
        store.delete_conversation(conversation_id)
    except ConversationNotFoundError as e:
        raise _not_found(e)
    orchestrator.forget_conversation(conversation_id)


@router.post(
    "/{conversation_id}/turns",
    response_model=TurnResponse,
    summary="Send a message and get the reply",
)
async def send_turn(
    conversation_id: str,
    request: TurnRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> TurnResponse:
    """
    Run one conversational turn.

    Raises:
        HTTPException: 400 for an empty turn, 404 for an unknown conversation.
    """
    if not request.text.strip() and not request.attachments:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A turn needs text or at least one attachment",
        )

    attachments = [a.to_attachment() for a in request.attachments]
    logger.info(
        "Turn requested",
        conversation_id=conversation_id,
        text_length=len(request.text),
        attachments=len(attachments),
    )

    try:
        result = await orchestrator.send_turn(
            conversation_id,
            request.text,
            attachments=attachments,
            system_prompt=request.system_prompt,
        )
    except ConversationNotFoundError as e:
        raise _not_found(e)
    return TurnResponse.from_result(result)


@router.post(
    "/{conversation_id}/messages/{message_id}/read",
    response_model=MessageOut,
    summary="Mark a message as read",
)
async def mark_read(
    conversation_id: str,
    message_id: str,
    store: InMemoryConversationStore = Depends(get_store),
) -> MessageOut:
    """Mark a message read. Marking an already read message changes nothing."""
    try:
        message = store.mark_read(conversation_id, message_id)
    except (ConversationNotFoundError, MessageNotFoundError) as e:
        raise _not_found(e)
    return MessageOut.from_message(message)


@router.post(
    "/{conversation_id}/random-message",
    response_model=RandomMessageResponse,
    summary="Ask the assistant to write first",
)
async def send_random_message(
    conversation_id: str,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    store: InMemoryConversationStore = Depends(get_store),
) -> RandomMessageResponse:
    try:
        store.get_conversation(conversation_id)
    except ConversationNotFoundError as e:
        raise _not_found(e)

    message = await orchestrator.send_random_message(conversation_id)
    if message is None:
        return RandomMessageResponse(sent=False)
    return RandomMessageResponse(sent=True, message=MessageOut.from_message(message))
