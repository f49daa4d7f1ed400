"""Event schema for c3 lifecycle telemetry.

Every subject (``"c3 session"``, ``"c3 prompt"``) defines four stages. Each
``<subject> <stage>`` name has its own properties model, so a property added to
one stage is never implicitly accepted by another. ``started`` events in
particular never carry a duration.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class Stage(str, Enum):
    """Lifecycle stages of an instrumented operation."""

    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


TERMINAL_STAGES = (Stage.COMPLETED, Stage.CANCELLED, Stage.ERRORED)


class OsInfo(BaseModel):
    platform: str
    arch: str


class ErrorInfo(BaseModel):
    """Best-effort description of a failure; both fields may be unknown."""

    message: str | None = None
    stack: str | None = None


class EventProperties(BaseModel):
    """Ambient properties attached to every event at send time."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    c3_version: str | None = Field(default=None, alias="c3Version")
    session_id: str | None = Field(default=None, alias="sessionId")
    os: OsInfo | None = None


class SessionStartedProperties(EventProperties):
    args: dict[str, Any] | None = None


class SessionCompletedProperties(SessionStartedProperties):
    duration_ms: int | None = Field(default=None, alias="durationMs", ge=0)


class SessionCancelledProperties(SessionStartedProperties):
    duration_ms: int | None = Field(default=None, alias="durationMs", ge=0)
    signal: str | None = None


class SessionErroredProperties(SessionStartedProperties):
    duration_ms: int | None = Field(default=None, alias="durationMs", ge=0)
    error: ErrorInfo | None = None


class PromptStartedProperties(EventProperties):
    args: dict[str, Any] | None = None
    key: str | None = None
    prompt_config: dict[str, Any] | None = Field(default=None, alias="promptConfig")


class PromptCompletedProperties(PromptStartedProperties):
    duration_ms: int | None = Field(default=None, alias="durationMs", ge=0)
    # Taken either from the CLI arguments or from the user's input.
    answer: Any = None
    is_default_value: bool | None = Field(default=None, alias="isDefaultValue")


class PromptCancelledProperties(PromptStartedProperties):
    duration_ms: int | None = Field(default=None, alias="durationMs", ge=0)
    signal: str | None = None


class PromptErroredProperties(PromptStartedProperties):
    duration_ms: int | None = Field(default=None, alias="durationMs", ge=0)
    error: ErrorInfo | None = None


class SessionStarted(BaseModel):
    name: Literal["c3 session started"]
    properties: SessionStartedProperties


class SessionCompleted(BaseModel):
    name: Literal["c3 session completed"]
    properties: SessionCompletedProperties


class SessionCancelled(BaseModel):
    name: Literal["c3 session cancelled"]
    properties: SessionCancelledProperties


class SessionErrored(BaseModel):
    name: Literal["c3 session errored"]
    properties: SessionErroredProperties


class PromptStarted(BaseModel):
    name: Literal["c3 prompt started"]
    properties: PromptStartedProperties


class PromptCompleted(BaseModel):
    name: Literal["c3 prompt completed"]
    properties: PromptCompletedProperties


class PromptCancelled(BaseModel):
    name: Literal["c3 prompt cancelled"]
    properties: PromptCancelledProperties


class PromptErrored(BaseModel):
    name: Literal["c3 prompt errored"]
    properties: PromptErroredProperties


Event = Annotated[
    Union[
        SessionStarted,
        SessionCompleted,
        SessionCancelled,
        SessionErrored,
        PromptStarted,
        PromptCompleted,
        PromptCancelled,
        PromptErrored,
    ],
    Field(discriminator="name"),
]

_EVENT_ADAPTER: TypeAdapter[Event] = TypeAdapter(Event)

SUBJECTS: dict[str, dict[Stage, type[EventProperties]]] = {
    "c3 session": {
        Stage.STARTED: SessionStartedProperties,
        Stage.COMPLETED: SessionCompletedProperties,
        Stage.CANCELLED: SessionCancelledProperties,
        Stage.ERRORED: SessionErroredProperties,
    },
    "c3 prompt": {
        Stage.STARTED: PromptStartedProperties,
        Stage.COMPLETED: PromptCompletedProperties,
        Stage.CANCELLED: PromptCancelledProperties,
        Stage.ERRORED: PromptErroredProperties,
    },
}


def event_name(prefix: str, stage: Stage | str) -> str:
    """Return the full event name, validating that the subject is known."""
    properties_model(prefix, stage)
    return f"{prefix} {Stage(stage).value}"


def properties_model(prefix: str, stage: Stage | str) -> type[EventProperties]:
    try:
        stages = SUBJECTS[prefix]
    except KeyError:
        raise ValueError(f"Unknown event prefix: {prefix!r}") from None
    return stages[Stage(stage)]


def resolve_property_key(prefix: str, stage: Stage | str, key: str) -> str:
    """Map a field name or wire alias onto the wire key of the stage's schema."""
    model = properties_model(prefix, stage)
    for field_name, info in model.model_fields.items():
        alias = info.alias or field_name
        if key in (field_name, alias):
            return alias
    raise ValueError(f"{key!r} is not a property of {event_name(prefix, stage)!r} events")


def build_event(name: str, properties: dict[str, Any]) -> Event:
    """Validate ``properties`` against the arm selected by ``name``."""
    return _EVENT_ADAPTER.validate_python({"name": name, "properties": properties})


def dump_properties(properties: EventProperties) -> dict[str, Any]:
    return properties.model_dump(mode="json", by_alias=True, exclude_none=True)


def validate_lenient(model: type[EventProperties], properties: dict[str, Any]) -> tuple[EventProperties, list[str]]:
    """Validate ``properties``, dropping the top-level keys the schema rejects."""
    try:
        return model.model_validate(properties), []
    except ValidationError as exc:
        rejected = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
    kept = {key: value for key, value in properties.items() if key not in rejected}
    return model.model_validate(kept), rejected
