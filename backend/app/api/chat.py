"""Chat endpoint — validates the conversation and streams Grok's answer.

POST /chat  {messages, system?, model?, secretKey?}
            optional header  Authorization: Bearer <secret>
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from api.deps import get_gateway, read_json_object
from config import settings
from core.auth import authorize_chat
from core.errors import EmptyMessages, InvalidMessages
from core.messages import parse_messages
from services.completion import STREAM_HEADERS, CompletionGateway

router = APIRouter(tags=["chat"])
logger = logging.getLogger("grokchat.api.chat")


@router.post("/chat")
async def chat(request: Request, gateway: CompletionGateway = Depends(get_gateway)):
    body = await read_json_object(request)

    raw_messages = body.get("messages")
    if not isinstance(raw_messages, list):
        raise InvalidMessages()
    try:
        messages = parse_messages(raw_messages)
    except ValidationError as e:
        logger.info("Rejected chat request: %d message validation errors", e.error_count())
        raise InvalidMessages("Invalid request: malformed message in messages array")

    if not messages and settings.CHAT_REJECT_EMPTY:
        raise EmptyMessages()

    authorize_chat(request, body)

    model = gateway.select_model(body.get("model"))
    system = gateway.resolve_system(body.get("system"))

    events = await gateway.open_stream(messages, system, model)
    return StreamingResponse(events, media_type="text/event-stream", headers=STREAM_HEADERS)
