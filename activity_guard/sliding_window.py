"""Sliding window record for per-key timestamp accumulation.

Used by the rapid-pattern detector (per actor) and the brute-force guard
(per origin).  The record is an immutable value: detectors compute the next
state inside ``KeyValueStore.update`` so prune, append, threshold check and
the alerted flag all land in one atomic write.  Nothing here touches the
store or the clock.
"""

from dataclasses import dataclass, replace

from activity_guard.clock import in_window


@dataclass(frozen=True)
class WindowState:
    timestamps: tuple[float, ...] = ()
    # Set once an episode has alerted; cleared when the pruned window falls
    # back below threshold.
    alerted: bool = False

    @property
    def count(self) -> int:
        return len(self.timestamps)

    @property
    def window_start(self) -> float | None:
        return self.timestamps[0] if self.timestamps else None

    def pruned(self, now: float, window_seconds: float) -> "WindowState":
        """Drop timestamps older than the window.  Boundary is kept (strict <)."""
        kept = tuple(ts for ts in self.timestamps if in_window(ts, now, window_seconds))
        if len(kept) == len(self.timestamps):
            return self
        return replace(self, timestamps=kept)

    def appended(self, timestamp: float, max_entries: int | None = None) -> "WindowState":
        """Add *timestamp*, dropping the oldest entries beyond *max_entries*."""
        timestamps = self.timestamps + (timestamp,)
        if max_entries is not None and len(timestamps) > max_entries:
            timestamps = timestamps[-max_entries:]
        return replace(self, timestamps=timestamps)

    def rearmed(self, threshold: int) -> "WindowState":
        """Clear the alerted flag if the window has dropped below threshold."""
        if self.alerted and self.count < threshold:
            return replace(self, alerted=False)
        return self

    def mark_alerted(self) -> "WindowState":
        return replace(self, alerted=True)


@dataclass(frozen=True)
class Observation:
    """What one window update produced, returned out of the critical section."""

    state: WindowState
    breached: bool


def observe(state: WindowState | None, now: float, window_seconds: float,
            threshold: int, max_entries: int | None = None) -> Observation:
    """Advance a window by one event at *now*.

    1. Prune: evict timestamps outside the trailing window
    2. Re-arm: clear the alerted flag if the pruned window is below threshold
    3. Append: record *now*, keeping at most *max_entries* timestamps
    4. Check: a count at or above threshold on an un-alerted window breaches

    ``breached`` is True at most once per episode: the returned state is
    already marked alerted.

    *max_entries* bounds the record for a key under sustained traffic and
    must be at least *threshold*.  Counts saturate at *max_entries*; the
    dropped timestamps are always the oldest.
    """
    state = (state or WindowState()).pruned(now, window_seconds).rearmed(threshold)
    state = state.appended(now, max_entries)
    if state.count >= threshold and not state.alerted:
        return Observation(state.mark_alerted(), True)
    return Observation(state, False)
