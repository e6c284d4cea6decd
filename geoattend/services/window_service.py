"""
Window Calculator - check-in / check-out windows for an event

Pure functions: no database access, no clock reads. Callers pass the
instant they sampled once for the whole request.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import List, NamedTuple, Optional

from geoattend.db.models import Event
from geoattend.enums import AttendancePhase, EventStatus
from geoattend.services.results import ErrorKind, ServiceResult

DEFAULT_BUFFER_MINS = 30
MAX_BUFFER_MINS = 1440


class WindowPhase(str, Enum):
    before_check_in = "BeforeCheckIn"
    check_in_open = "CheckInOpen"
    between_windows = "BetweenWindows"
    check_out_open = "CheckOutOpen"
    after_check_out = "AfterCheckOut"
    event_not_active = "EventNotActive"


class AttendanceWindows(NamedTuple):
    check_in_opens: datetime
    check_in_closes: datetime
    check_out_opens: datetime
    check_out_closes: datetime

    def to_dict(self) -> dict:
        return {name: value.isoformat() for name, value in self._asdict().items()}


class WindowState(NamedTuple):
    phase: WindowPhase
    windows: AttendanceWindows


def compute_windows(event: Event) -> AttendanceWindows:
    """The four boundary instants for an event"""
    return AttendanceWindows(
        check_in_opens=event.start_time,
        check_in_closes=event.start_time + timedelta(minutes=event.check_in_buffer_mins),
        check_out_opens=event.end_time - timedelta(minutes=event.check_out_buffer_mins),
        check_out_closes=event.end_time
    )


def classify(event: Event, now: datetime) -> WindowState:
    """
    Place ``now`` relative to the event's windows.

    Boundaries are inclusive on both ends. A non-Active event reports
    ``EventNotActive`` whatever the time is.
    """
    windows = compute_windows(event)

    if event.status != EventStatus.active.value:
        return WindowState(WindowPhase.event_not_active, windows)

    if now < windows.check_in_opens:
        phase = WindowPhase.before_check_in
    elif now <= windows.check_in_closes:
        phase = WindowPhase.check_in_open
    elif now < windows.check_out_opens:
        phase = WindowPhase.between_windows
    elif now <= windows.check_out_closes:
        phase = WindowPhase.check_out_open
    else:
        phase = WindowPhase.after_check_out

    return WindowState(phase, windows)


def check_phase_window(
    state: WindowState,
    attendance_phase: AttendancePhase
) -> Optional[ServiceResult]:
    """
    Return a failure result when ``attendance_phase`` may not be submitted
    in ``state``, or None when its window is open.
    """
    windows = state.windows

    if attendance_phase == AttendancePhase.check_in:
        if state.phase == WindowPhase.check_in_open:
            return None
        if state.phase == WindowPhase.before_check_in:
            return ServiceResult.fail(
                ErrorKind.window_not_open,
                f"Check-in opens at {windows.check_in_opens.isoformat()}",
                boundary=windows.check_in_opens
            )
        return ServiceResult.fail(
            ErrorKind.window_closed,
            f"Check-in closed at {windows.check_in_closes.isoformat()}",
            boundary=windows.check_in_closes
        )

    if state.phase == WindowPhase.check_out_open:
        return None
    if state.phase == WindowPhase.after_check_out:
        return ServiceResult.fail(
            ErrorKind.window_closed,
            f"Check-out closed at {windows.check_out_closes.isoformat()}",
            boundary=windows.check_out_closes
        )
    return ServiceResult.fail(
        ErrorKind.window_not_open,
        f"Check-out opens at {windows.check_out_opens.isoformat()}",
        boundary=windows.check_out_opens
    )


def validate_window_config(
    start_time: datetime,
    end_time: datetime,
    check_in_buffer_mins: int = DEFAULT_BUFFER_MINS,
    check_out_buffer_mins: int = DEFAULT_BUFFER_MINS
) -> List[str]:
    """List the creation invariants an event configuration violates"""
    problems = []

    for label, value in (
        ("check_in_buffer_mins", check_in_buffer_mins),
        ("check_out_buffer_mins", check_out_buffer_mins),
    ):
        if value < 0:
            problems.append(f"{label} cannot be negative")
        elif value > MAX_BUFFER_MINS:
            problems.append(f"{label} cannot exceed {MAX_BUFFER_MINS} minutes")

    if start_time >= end_time:
        problems.append("start_time must be before end_time")
    elif (start_time + timedelta(minutes=check_in_buffer_mins)
          >= end_time - timedelta(minutes=check_out_buffer_mins)):
        problems.append("check-in window must close before the check-out window opens")

    return problems
