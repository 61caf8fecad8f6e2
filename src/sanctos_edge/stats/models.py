"""Stats actor state, events and snapshots.

Wire format is camelCase (``totalRequests``, ``httpMethod``...) so the
dashboard script and remote actors read the same JSON; Python code uses the
snake_case attribute names.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from sanctos_edge.core.constants import TrafficLane
from sanctos_edge.stats.buckets import RateBucket


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TrafficEvent(_Wire):
    type: Literal["traffic"] = "traffic"
    lane: str = TrafficLane.OTHER_GET.value
    http_method: str = ""
    ts: int | None = None


class CacheEvent(_Wire):
    type: Literal["cache"] = "cache"
    lane: Literal["hit", "miss", "bypass"]
    n: int = Field(default=1, ge=1)


class MethodsEvent(_Wire):
    type: Literal["methods"] = "methods"
    methods: list[str] = Field(default_factory=list)
    ts: int | None = None


class UpstreamEvent(_Wire):
    type: Literal["upstream"] = "upstream"
    ok: bool
    url: str = ""
    name: str = ""
    status: int = 0
    err: str = ""
    ts: int | None = None


StatsEvent = Annotated[
    Union[TrafficEvent, CacheEvent, MethodsEvent, UpstreamEvent],
    Field(discriminator="type"),
]

stats_event_adapter: TypeAdapter[StatsEvent] = TypeAdapter(StatsEvent)


# ---------------------------------------------------------------------------
# Persistent state
# ---------------------------------------------------------------------------


def _lane_totals() -> dict[str, int]:
    return {lane.value: 0 for lane in TrafficLane}


def _lane_rates() -> dict[str, RateBucket]:
    return {lane.value: RateBucket() for lane in TrafficLane}


class TrafficState(_Wire):
    totals: dict[str, int] = Field(default_factory=_lane_totals)
    rates: dict[str, RateBucket] = Field(default_factory=_lane_rates)


class StatsState(_Wire):
    """Everything the actor persists after each mutation."""

    start_time: int = 0
    total_requests: int = 0
    total_post_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_bypass: int = 0

    last_upstream_ok_at: int = 0
    last_upstream_url: str = ""
    last_upstream_name: str = ""
    last_upstream_status: int = 0
    last_upstream_error_at: int = 0
    last_upstream_error: str = ""

    methods_all_time: dict[str, int] = Field(default_factory=dict)
    methods_by_day: dict[str, dict[str, int]] = Field(default_factory=dict)
    traffic: TrafficState = Field(default_factory=TrafficState)


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------


class TrafficView(_Wire):
    totals: dict[str, int] = Field(default_factory=dict)
    last60: dict[str, int] = Field(default_factory=dict)
    series60: dict[str, list[int]] = Field(default_factory=dict)


class StatsSnapshot(_Wire):
    """What ``get`` returns: the counters plus derived rolling views."""

    start_time: int = 0
    total_requests: int = 0
    total_post_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    cache_bypass: int = 0

    last_upstream_ok_at: int = 0
    last_upstream_url: str = ""
    last_upstream_name: str = ""
    last_upstream_status: int = 0
    last_upstream_error_at: int = 0
    last_upstream_error: str = ""

    traffic: TrafficView = Field(default_factory=TrafficView)

    today: str = ""
    today_counts: dict[str, int] = Field(default_factory=dict)
    all_time_counts: dict[str, int] = Field(default_factory=dict)
    by_day: dict[str, dict[str, int]] = Field(default_factory=dict)

    degraded: bool = False
