"""Request-boundary error taxonomy.

Every failure the HTTP surface can report is one of these exceptions.
The handler installed by register_error_handlers() renders them as
``{"error": "<message>"}`` with the class's status code.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("grokchat.errors")


class ChatbotError(Exception):
    """Base exception for request-boundary failures."""

    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class MalformedRequest(ChatbotError):
    status_code = 400
    default_message = "Invalid request: body must be a JSON object"


class InvalidMessages(ChatbotError):
    status_code = 400
    default_message = "Invalid request: Messages must be an array"


class EmptyMessages(ChatbotError):
    status_code = 400
    default_message = "Invalid request: Messages array cannot be empty"


class Unauthorized(ChatbotError):
    status_code = 401
    default_message = "Unauthorized"


class UpstreamFailure(ChatbotError):
    status_code = 500
    default_message = (
        "An unexpected error occurred while processing your request. "
        "Please try again."
    )


class StoreFailure(ChatbotError):
    status_code = 500
    default_message = "Failed to save prompt"


class Misconfigured(ChatbotError):
    status_code = 500
    default_message = "Server is not configured"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChatbotError)
    async def chatbot_error_handler(request: Request, exc: ChatbotError):
        if exc.status_code >= 500:
            logger.error("%s %s → %s: %s", request.method, request.url.path,
                         type(exc).__name__, exc.message)
        else:
            logger.info("%s %s → %d %s", request.method, request.url.path,
                        exc.status_code, type(exc).__name__)
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
