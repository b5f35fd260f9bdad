"""Pydantic models for inbound WebSocket frames and event payloads.

Each model validates the payload of one inbound event. Text fields share the
rules in ``relay.services.validation``; the maximum length comes from the
validation context (``{"max_length": ...}``) so it follows configuration.
"""

from __future__ import annotations

from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from relay.exceptions import ValidationError
from relay.services.validation import DEFAULT_MAX_LENGTH, validate_text

LOGIN_FIELDS = ("username", "fullName", "url", "userAgent")


def _max_length(info: ValidationInfo) -> int:
    if info.context and "max_length" in info.context:
        return info.context["max_length"]
    return DEFAULT_MAX_LENGTH


def _checked(value: object, field: str, info: ValidationInfo, *, allow_empty: bool = False) -> str:
    try:
        return validate_text(value, field=field, max_length=_max_length(info), allow_empty=allow_empty)
    except ValidationError as exc:
        raise ValueError(exc.message) from exc


# ---------------------------------------------------------------------------
# Frame envelope
# ---------------------------------------------------------------------------


class InboundFrame(BaseModel):
    """One client frame: ``{"event": ..., "data": ..., "ack": ...}``."""

    event: str = Field(..., min_length=1)
    data: Any = None
    ack: str | int | None = None


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Payload for ``login``."""

    model_config = ConfigDict(populate_by_name=True)

    username: str
    full_name: str = Field(alias="fullName")
    url: str | None = None
    user_agent: str | None = Field(default=None, alias="userAgent")

    @field_validator("username", mode="before")
    @classmethod
    def _check_username(cls, value: object, info: ValidationInfo) -> str:
        return _checked(value, "username", info)

    @field_validator("full_name", mode="before")
    @classmethod
    def _check_full_name(cls, value: object, info: ValidationInfo) -> str:
        return _checked(value, "fullName", info)


class ChatMessageRequest(BaseModel):
    """Payload for ``chatMessage``: ``person`` is the target username."""

    person: str
    message: str

    @field_validator("person", mode="before")
    @classmethod
    def _check_person(cls, value: object, info: ValidationInfo) -> str:
        return _checked(value, "person", info)

    @field_validator("message", mode="before")
    @classmethod
    def _check_message(cls, value: object, info: ValidationInfo) -> str:
        return _checked(value, "message", info)


class TypingRequest(BaseModel):
    """Payload for ``typing``. ``person`` is accepted but never trusted."""

    person: Any = None
    typing: bool = False


class StatusUpdateRequest(BaseModel):
    """Payload for ``updateStatus``. An empty status clears it."""

    status: str

    @field_validator("status", mode="before")
    @classmethod
    def _check_status(cls, value: object, info: ValidationInfo) -> str:
        return _checked(value, "status", info, allow_empty=True)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _describe(exc: pydantic.ValidationError) -> str:
    """Turn the first pydantic error into a short human-readable message."""
    error = exc.errors()[0]
    cause = (error.get("ctx") or {}).get("error")
    if cause is not None:
        return str(cause)
    location = ".".join(str(part) for part in error["loc"])
    if error["type"] == "missing":
        return f"{location} is required"
    return f"{location}: {error['msg']}" if location else error["msg"]


def parse_payload(model: type[BaseModel], data: Any, *, max_length: int = DEFAULT_MAX_LENGTH):
    """Validate *data* against *model*, raising the relay ``ValidationError``."""
    if not isinstance(data, dict):
        raise ValidationError("Payload must be a JSON object")
    try:
        return model.model_validate(data, context={"max_length": max_length})
    except pydantic.ValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


def parse_login(data: Any, *, max_length: int = DEFAULT_MAX_LENGTH) -> LoginRequest:
    """Accept either ``{username, fullName, url, userAgent}`` or the positional list form."""
    if isinstance(data, (list, tuple)):
        data = dict(zip(LOGIN_FIELDS, data))
    return parse_payload(LoginRequest, data, max_length=max_length)


def parse_status(data: Any, *, max_length: int = DEFAULT_MAX_LENGTH) -> StatusUpdateRequest:
    """Accept a bare status string or ``{"status": ...}``."""
    if isinstance(data, str):
        data = {"status": data}
    return parse_payload(StatusUpdateRequest, data, max_length=max_length)


def parse_frame(raw: str) -> InboundFrame:
    """Decode one text frame into an ``InboundFrame``."""
    try:
        return InboundFrame.model_validate_json(raw)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Malformed frame: {_describe(exc)}") from exc
