"""Subscription validation handshake: echo Graph's validationToken as plain text."""

from fastapi import Request
from fastapi.responses import PlainTextResponse

VALIDATION_TOKEN_PARAM = "validationToken"


def extract_validation_token(request: Request) -> str | None:
    """Return the validationToken query parameter (any method), or None when absent or empty."""
    token = request.query_params.get(VALIDATION_TOKEN_PARAM)
    return token or None


def validation_response(token: str) -> PlainTextResponse:
    # Graph requires the decoded token back verbatim within 10 seconds
    return PlainTextResponse(content=token, status_code=200, media_type="text/plain")
