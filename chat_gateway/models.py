from __future__ import annotations

import base64
import binascii
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


Role = Literal["system", "user", "assistant"]
ReasoningEffort = Literal["minimal", "low", "medium", "high"]
Verbosity = Literal["low", "medium", "high"]


def _base64_size(data: str) -> int:
    padding = len(data) - len(data.rstrip("="))
    return max(0, len(data) * 3 // 4 - padding)


class FileAttachment(BaseModel):
    model_config = ConfigDict(validate_by_name=True, extra="ignore")

    name: str = "file"
    mime_type: str = Field(default="", alias="type")
    size: int = 0
    data: str | None = None
    url: str | None = None

    @field_validator("data")
    @classmethod
    def _check_base64(cls, value: str | None) -> str | None:
        if value:
            try:
                base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError("file data is not valid base64") from exc
        return value

    @model_validator(mode="after")
    def _size_from_payload(self) -> "FileAttachment":
        # the declared size only counts for URL-only attachments
        if self.data:
            self.size = _base64_size(self.data)
        return self

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def decode(self) -> bytes:
        """Return the inline payload; URL-only attachments have none."""
        if not self.data:
            return b""
        return base64.b64decode(self.data)


class Message(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Role
    content: str = ""
    files: list[FileAttachment] = Field(default_factory=list)


class GenerationParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    temperature: float = 0.7
    max_tokens: int | None = None
    extended_thinking: bool = False
    thinking_budget_tokens: int = 1024
    reasoning_effort: ReasoningEffort = "medium"
    verbosity: Verbosity = "medium"
    enable_web_search: bool = True
    system_prompt: str = ""

    @model_validator(mode="after")
    def _thinking_requires_unit_temperature(self) -> "GenerationParams":
        if self.extended_thinking and self.temperature != 1:
            raise ValueError("temperature must be 1 when extended_thinking is enabled")
        return self


class FileValidationWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_name: str
    reason: str

    def to_wire(self) -> dict[str, str]:
        return {"fileName": self.file_name, "reason": self.reason}


class ChatRequest(BaseModel):
    messages: list[Message]
    model: str
    stream: bool = False
    params: GenerationParams
    warnings: list[FileValidationWarning] = Field(default_factory=list)

    def last_user_message(self) -> Message | None:
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None

    def attachments(self) -> list[FileAttachment]:
        message = self.last_user_message()
        return list(message.files) if message else []


class Usage(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_wire(self) -> dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


class ProviderResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    provider: str
    usage: Usage = Field(default_factory=Usage)
    is_truncated: bool = False
    stop_reason: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "provider": self.provider,
            "usage": self.usage.to_wire(),
            "isTruncated": self.is_truncated,
            "stopReason": self.stop_reason,
        }


class StreamChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str = ""
    is_complete: bool = False
    usage: Usage | None = None
    is_truncated: bool | None = None
    stop_reason: str | None = None
