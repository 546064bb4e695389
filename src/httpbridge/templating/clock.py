"""
Polling clock and time-token resolution.

Two special placeholder names resolve to epoch timestamps instead of record
fields:

- ``$lastPollingDateTime``: start of the current polling window
- ``$currentDateTime``: the instant the template is rendered

Both use one unit flag: whole seconds by default, milliseconds when
``use_epoch_milliseconds`` is set. Seconds are the millisecond value
integer-divided by 1000, so the two units always agree for one instant.

The clock is read-only here. Whoever schedules polls advances it by
building a new clock with :meth:`PollingClock.advance`.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta

LAST_POLLING_DATETIME = "$lastPollingDateTime"
CURRENT_DATETIME = "$currentDateTime"

SPECIAL_TOKENS = frozenset({LAST_POLLING_DATETIME, CURRENT_DATETIME})

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def to_epoch(moment: datetime, *, milliseconds: bool) -> int:
    """Epoch value of ``moment`` in the requested unit (naive datetimes are UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    millis = (moment - _EPOCH) // timedelta(milliseconds=1)
    return millis if milliseconds else millis // 1000


@dataclass(frozen=True)
class PollingClock:
    """Start of the current polling window plus the epoch unit flag."""

    last_polling: datetime
    use_epoch_milliseconds: bool = False

    @classmethod
    def from_epoch(cls, value: int, *, use_epoch_milliseconds: bool = False) -> PollingClock:
        """Clock whose window starts at ``value`` (interpreted in the clock's unit)."""
        delta = timedelta(milliseconds=value) if use_epoch_milliseconds else timedelta(seconds=value)
        return cls(
            last_polling=_EPOCH + delta,
            use_epoch_milliseconds=use_epoch_milliseconds,
        )

    def advance(self, to: datetime) -> PollingClock:
        """New clock starting at ``to``; never moves the window backwards."""
        if to.tzinfo is None:
            to = to.replace(tzinfo=UTC)
        current = self.last_polling if self.last_polling.tzinfo else self.last_polling.replace(tzinfo=UTC)
        if to <= current:
            return self
        return replace(self, last_polling=to)

    def epoch(self, moment: datetime) -> int:
        return to_epoch(moment, milliseconds=self.use_epoch_milliseconds)


@dataclass(frozen=True)
class TimeTokenResolver:
    """
    Resolves special tokens against a clock.

    ``now`` is injectable so tests can pin ``$currentDateTime``; it is called
    on every resolution, never cached across a batch.
    """

    clock: PollingClock
    now: Callable[[], datetime] = field(default=utcnow)

    def is_token(self, name: str) -> bool:
        return name in SPECIAL_TOKENS

    def resolve(self, name: str) -> str | None:
        """Rendered timestamp for a special token, ``None`` for any other name."""
        if name == LAST_POLLING_DATETIME:
            return str(self.clock.epoch(self.clock.last_polling))
        if name == CURRENT_DATETIME:
            return str(self.clock.epoch(self.now()))
        return None
