"""Pydantic models for targets, probe results and the persisted monitor state."""

from __future__ import annotations

import math
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

STATE_VERSION = 1


def _round_ms(value: object) -> object:
    # Remote workers may report fractional milliseconds.
    if isinstance(value, float) and math.isfinite(value):
        return round(value)
    return value


Milliseconds = Annotated[int, BeforeValidator(_round_ms)]


class _CamelModel(BaseModel):
    """Base model serialized with camelCase keys, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MonitorTarget(_CamelModel):
    """A single monitored endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    target: str
    method: str = "GET"
    expected_codes: frozenset[int] | None = None
    remote_check_endpoint: str | None = None
    tooltip: str | None = None
    timeout_ms: int = Field(default=10_000, ge=1)
    headers: dict[str, str] | None = None
    body: str | None = None
    response_keyword: str | None = None


class ProbeStatus(_CamelModel):
    """Outcome of one probe."""

    ok: bool
    latency_ms: Milliseconds = 0
    error: str = ""


class RemoteCheckRequest(BaseModel):
    """Body sent to a remote check endpoint."""

    target: str


class RemoteCheckResponse(BaseModel):
    """Body returned by a remote check endpoint."""

    location: str
    status: ProbeStatus


class Incident(_CamelModel):
    """One span of down-ness; parallel ``starts``/``errors``, ``end`` is None while open."""

    starts: list[int] = Field(..., min_length=1)
    errors: list[str] = Field(..., min_length=1)
    end: int | None = None

    @model_validator(mode="after")
    def _parallel_arrays(self) -> Incident:
        if len(self.starts) != len(self.errors):
            raise ValueError("starts and errors must have the same length")
        return self

    @property
    def is_open(self) -> bool:
        return self.end is None


class LatencySample(_CamelModel):
    location: str
    latency_ms: Milliseconds
    time: int


class LatencyHistory(_CamelModel):
    recent: list[LatencySample] = Field(default_factory=list)
    all: list[LatencySample] = Field(default_factory=list)


class MonitorState(_CamelModel):
    """Process-wide aggregate persisted as one JSON document."""

    version: int = STATE_VERSION
    last_update: int = 0
    overall_up: int = 0
    overall_down: int = 0
    incidents: dict[str, list[Incident]] = Field(default_factory=dict)
    latency: dict[str, LatencyHistory] = Field(default_factory=dict)
