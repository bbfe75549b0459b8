from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Event(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class StartEvent(_Event):
    type: Literal["start"] = "start"
    conversation_id: str
    message_id: str


class TokenEvent(_Event):
    type: Literal["token"] = "token"
    content: str


class DoneEvent(_Event):
    type: Literal["done"] = "done"
    message_id: str
    model: str
    tokens_used: int = Field(ge=0)
    latency_ms: int = Field(ge=0)


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    code: str
    message: str


StreamEvent = Annotated[
    Union[StartEvent, TokenEvent, DoneEvent, ErrorEvent],
    Field(discriminator="type"),
]
