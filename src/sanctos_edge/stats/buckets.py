from __future__ import annotations

from pydantic import BaseModel, Field

from sanctos_edge.core.constants import RATE_SLOTS


def _zeros() -> list[int]:
    return [0] * RATE_SLOTS


class RateBucket(BaseModel):
    """Sixty one-second slots addressed by ``second % 60``.

    Each slot remembers the absolute second it was last written in.  A write
    into a slot holding an older second resets it first, so reads can tell
    real counts from leftovers of a previous minute.
    """

    buckets: list[int] = Field(default_factory=_zeros)
    stamps: list[int] = Field(default_factory=_zeros)

    def bump(self, now_sec: int, inc: int = 1) -> None:
        i = now_sec % RATE_SLOTS
        if self.stamps[i] != now_sec:
            self.stamps[i] = now_sec
            self.buckets[i] = 0
        self.buckets[i] += inc

    def sum_last60(self, now_sec: int) -> int:
        """Exact count of events in the 60 seconds ending at *now_sec*."""
        return sum(
            count
            for count, stamp in zip(self.buckets, self.stamps)
            if 0 <= now_sec - stamp < RATE_SLOTS
        )

    def series_last60(self, now_sec: int) -> list[int]:
        """Per-second counts, oldest first; the last element is *now_sec*."""
        out = _zeros()
        for k in range(RATE_SLOTS):
            sec = now_sec - (RATE_SLOTS - 1 - k)
            i = sec % RATE_SLOTS
            out[k] = self.buckets[i] if self.stamps[i] == sec else 0
        return out
