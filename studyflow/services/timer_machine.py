"""Pomodoro timer as an explicit finite-state machine.

State is ``mode x (remaining_seconds, running)`` plus the bookkeeping needed to
finalize intervals. Every transition is a pure function returning the next
state and the sessions it finalized; nothing here touches the clock, the
database or Redis. Callers are expected to ``tick`` up to ``now`` before
applying a user action so the countdown reflects elapsed wall time.
"""
import math
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel


class TimerMode(str, Enum):
    FOCUS = "FOCUS"
    SHORT_BREAK = "SHORT_BREAK"
    LONG_BREAK = "LONG_BREAK"


PRESETS: dict[str, dict[str, int]] = {
    "pomodoro": {"pomodoro_length": 25, "short_break_length": 5, "long_break_length": 15},
    "deep_work": {"pomodoro_length": 50, "short_break_length": 10, "long_break_length": 30},
    "sprint": {"pomodoro_length": 15, "short_break_length": 3, "long_break_length": 10},
    "extended": {"pomodoro_length": 45, "short_break_length": 10, "long_break_length": 20},
}


class TimerConfig(BaseModel):
    pomodoro_length: int = 25  # minutes
    short_break_length: int = 5
    long_break_length: int = 15
    long_break_interval: int = 4
    auto_start_breaks: bool = False
    auto_start_pomodoros: bool = False

    model_config = {"frozen": True, "from_attributes": True}

    def length_minutes(self, mode: TimerMode) -> int:
        if mode is TimerMode.FOCUS:
            return self.pomodoro_length
        if mode is TimerMode.SHORT_BREAK:
            return self.short_break_length
        return self.long_break_length

    def length_seconds(self, mode: TimerMode) -> int:
        return self.length_minutes(mode) * 60


class FinalizeSession(BaseModel):
    """Effect: one interval ended and must be handed to the session recorder."""

    session_type: TimerMode
    started_at: datetime
    ended_at: datetime
    completed: bool
    interrupted: bool
    planned_minutes: int

    model_config = {"frozen": True}


class TimerState(BaseModel):
    mode: TimerMode = TimerMode.FOCUS
    remaining_seconds: int
    running: bool = False
    started_at: datetime | None = None  # start of the current interval, kept across pauses
    last_tick_at: datetime | None = None
    focus_count: int = 0  # completed focus intervals
    focus_seconds_today: int = 0
    focus_day: date | None = None
    preset: str | None = None

    model_config = {"frozen": True}


class Transition(NamedTuple):
    state: TimerState
    effects: tuple[FinalizeSession, ...] = ()


def initial_state(config: TimerConfig, now: datetime | None = None) -> TimerState:
    return TimerState(
        mode=TimerMode.FOCUS,
        remaining_seconds=config.length_seconds(TimerMode.FOCUS),
        focus_day=now.date() if now else None,
    )


def next_mode(mode: TimerMode, focus_count: int, config: TimerConfig) -> TimerMode:
    """Cycle rule: every ``long_break_interval``-th focus interval earns a long break."""
    if mode is not TimerMode.FOCUS:
        return TimerMode.FOCUS
    interval = max(1, config.long_break_interval)
    if focus_count % interval == 0:
        return TimerMode.LONG_BREAK
    return TimerMode.SHORT_BREAK


def start(state: TimerState, config: TimerConfig, now: datetime) -> Transition:
    if state.running:
        return Transition(state)
    remaining = state.remaining_seconds
    if remaining <= 0:
        remaining = config.length_seconds(state.mode)
    return Transition(
        state.model_copy(
            update={
                "running": True,
                "remaining_seconds": remaining,
                "started_at": state.started_at or now,
                "last_tick_at": now,
            }
        )
    )


def pause(state: TimerState, config: TimerConfig, now: datetime) -> Transition:
    if not state.running:
        return Transition(state)
    return Transition(state.model_copy(update={"running": False, "last_tick_at": None}))


def reset(state: TimerState, config: TimerConfig, now: datetime) -> Transition:
    effect = _finalize(state, config, now, completed=False)
    new_state = state.model_copy(
        update={
            "remaining_seconds": config.length_seconds(state.mode),
            "running": False,
            "started_at": None,
            "last_tick_at": None,
        }
    )
    return Transition(new_state, _effects(effect))


def skip(state: TimerState, config: TimerConfig, now: datetime) -> Transition:
    effect = _finalize(state, config, now, completed=False)
    # A skipped focus interval is not counted, but decides the break as if it were.
    target = next_mode(state.mode, state.focus_count + 1, config)
    return Transition(_enter(state, config, target, now, auto_start=False), _effects(effect))


def switch_mode(
    state: TimerState, config: TimerConfig, mode: TimerMode, now: datetime
) -> Transition:
    effect = _finalize(state, config, now, completed=False)
    return Transition(_enter(state, config, mode, now, auto_start=False), _effects(effect))


def apply_preset(
    state: TimerState, config: TimerConfig, name: str, now: datetime
) -> tuple[Transition, TimerConfig]:
    if name not in PRESETS:
        raise ValueError(f"Unknown preset: {name}")
    effect = _finalize(state, config, now, completed=False)
    new_config = config.model_copy(update=PRESETS[name])
    new_state = _enter(state, new_config, TimerMode.FOCUS, now, auto_start=False)
    new_state = new_state.model_copy(update={"preset": name})
    return Transition(new_state, _effects(effect)), new_config


def tick(state: TimerState, config: TimerConfig, now: datetime) -> Transition:
    """Advance the countdown by the whole seconds elapsed since the last tick.

    Expiries found along the way are finalized at the instant they happened,
    so a timer that was left in the background catches up correctly. Focus
    time is credited to the local day it was spent in. A clock that went
    backwards yields zero elapsed time.
    """
    if not state.running or state.last_tick_at is None:
        return Transition(_roll_day(state, now))

    elapsed = int((now - state.last_tick_at).total_seconds())
    if elapsed <= 0:
        return Transition(_roll_day(state, now))

    tz = now.tzinfo
    effects: list[FinalizeSession] = []
    cursor = state.last_tick_at
    state = _roll_day(state, cursor.astimezone(tz))
    while elapsed > 0 and state.running:
        if state.remaining_seconds <= 0:
            state, effect = _expire(state, config, cursor)
            effects.extend(_effects(effect))
            continue
        step = min(elapsed, state.remaining_seconds, _seconds_to_midnight(cursor, tz))
        elapsed -= step
        cursor = cursor + timedelta(seconds=step)
        update = {"remaining_seconds": state.remaining_seconds - step, "last_tick_at": cursor}
        if state.mode is TimerMode.FOCUS:
            update["focus_seconds_today"] = state.focus_seconds_today + step
        state = _roll_day(state.model_copy(update=update), cursor.astimezone(tz))
        if state.remaining_seconds == 0:
            state, effect = _expire(state, config, cursor)
            effects.extend(_effects(effect))

    return Transition(_roll_day(state, now), tuple(effects))


def _roll_day(state: TimerState, at: datetime) -> TimerState:
    if state.focus_day == at.date():
        return state
    return state.model_copy(update={"focus_day": at.date(), "focus_seconds_today": 0})


def _seconds_to_midnight(at: datetime, tz) -> int:
    local = at.astimezone(tz)
    midnight = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=tz)
    seconds = (midnight.astimezone(timezone.utc) - local.astimezone(timezone.utc)).total_seconds()
    return max(1, math.ceil(seconds))


def _expire(
    state: TimerState, config: TimerConfig, at: datetime
) -> tuple[TimerState, FinalizeSession | None]:
    effect = _finalize(state, config, at, completed=True)
    if state.mode is TimerMode.FOCUS:
        focus_count = state.focus_count + 1
        target = next_mode(TimerMode.FOCUS, focus_count, config)
        auto_start = config.auto_start_breaks
    else:
        focus_count = state.focus_count
        target = TimerMode.FOCUS
        auto_start = config.auto_start_pomodoros
    counted = state.model_copy(update={"focus_count": focus_count})
    return _enter(counted, config, target, at, auto_start=auto_start), effect


def _enter(
    state: TimerState, config: TimerConfig, mode: TimerMode, now: datetime, auto_start: bool
) -> TimerState:
    return state.model_copy(
        update={
            "mode": mode,
            "remaining_seconds": config.length_seconds(mode),
            "running": auto_start,
            "started_at": now if auto_start else None,
            "last_tick_at": now if auto_start else None,
        }
    )


def _finalize(
    state: TimerState, config: TimerConfig, now: datetime, completed: bool
) -> FinalizeSession | None:
    if state.started_at is None:
        return None
    return FinalizeSession(
        session_type=state.mode,
        started_at=state.started_at,
        ended_at=max(now, state.started_at),
        completed=completed,
        interrupted=not completed,
        planned_minutes=config.length_minutes(state.mode),
    )


def _effects(effect: FinalizeSession | None) -> tuple[FinalizeSession, ...]:
    return (effect,) if effect is not None else ()
