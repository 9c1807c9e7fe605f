from fastapi import Request

from core.errors import MalformedRequest
from services.completion import CompletionGateway
from services.prompt_store import PromptStore


def get_gateway(request: Request) -> CompletionGateway:
    return request.app.state.gateway


def get_prompt_store(request: Request) -> PromptStore:
    return request.app.state.prompt_store


async def read_json_object(request: Request) -> dict:
    """Parse the request body as a JSON object or raise MalformedRequest."""
    try:
        body = await request.json()
    except ValueError:
        raise MalformedRequest("Invalid request: body is not valid JSON")
    if not isinstance(body, dict):
        raise MalformedRequest()
    return body
