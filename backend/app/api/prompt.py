"""System prompt API.

GET  /prompt           — current prompt (default on miss or store error)
POST /prompt, PUT /prompt  {prompt} — upsert
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.deps import get_prompt_store, read_json_object
from core.errors import MalformedRequest
from services.prompt_store import PromptStore

router = APIRouter(prefix="/prompt", tags=["prompt"])


class PromptOut(BaseModel):
    prompt: str


class PromptSaved(BaseModel):
    success: bool = True
    prompt: str


@router.get("", response_model=PromptOut)
async def get_prompt(store: PromptStore = Depends(get_prompt_store)):
    return PromptOut(prompt=await store.get_prompt())


@router.api_route("", methods=["POST", "PUT"], response_model=PromptSaved)
async def save_prompt(request: Request, store: PromptStore = Depends(get_prompt_store)):
    try:
        body = await read_json_object(request)
    except MalformedRequest:
        body = {}
    prompt = body.get("prompt")
    if not isinstance(prompt, str):
        return JSONResponse({"error": "Prompt must be a string"}, status_code=400)

    saved = await store.set_prompt(prompt)
    return PromptSaved(prompt=saved)
