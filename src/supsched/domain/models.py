"""Domain models for the supervision scheduling system.

This module contains the core data structures used throughout the engine:
time blocks, clients, the supervisor, the schedule request, placed blocks and
the per-run side-channel parameters. Loaders accept the loosely-typed JSON
produced by the record-keeping front end and fall back to permissive defaults
wherever a field is missing or malformed.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440
MIN_GRID = 5
DEFAULT_GRID = 15
DEFAULT_SUP_PERCENT = 10
DEFAULT_MIN_SESSION = 60
MIN_SESSION_FLOOR = 15
EPOCH = date(1970, 1, 1)


class ScheduleInputError(ValueError):
    """Raised when request data has the wrong structure to be loaded."""


class DayKey(Enum):
    """Weekday tags used to key weekly availability.

    Declared in canonical Monday-first order, which is also the order used to
    interleave dates during allocation.
    """

    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"

    @classmethod
    def from_date(cls, d: date) -> "DayKey":
        """Weekday tag for a calendar date."""
        return _WEEKDAY_ORDER[d.weekday()]

    @classmethod
    def parse(cls, value: Union[str, "DayKey"]) -> Optional["DayKey"]:
        """Parse ``"mon"``, ``"Monday"`` or ``"MON"``; None if unrecognised."""
        if isinstance(value, DayKey):
            return value
        key = str(value).strip().lower()[:3]
        for day in cls:
            if day.value == key:
                return day
        return None

    @classmethod
    def ordered(cls) -> list["DayKey"]:
        """All weekdays, Monday first."""
        return list(_WEEKDAY_ORDER)


_WEEKDAY_ORDER = (
    DayKey.MON,
    DayKey.TUE,
    DayKey.WED,
    DayKey.THU,
    DayKey.FRI,
    DayKey.SAT,
    DayKey.SUN,
)


def parse_iso_date(value: Union[str, date, None]) -> date:
    """Parse a ``YYYY-MM-DD`` string.

    Malformed values fall back to the 1970-01-01 epoch so a bad record never
    halts a run.
    """
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except (TypeError, ValueError):
        logger.warning("Unparseable date %r, using %s", value, EPOCH)
        return EPOCH


def date_range(start: date, end: date) -> list[date]:
    """All dates from start to end, inclusive."""
    dates = []
    current = start
    while current <= end:
        dates.append(current)
        current += timedelta(days=1)
    return dates


def week_start(d: date) -> date:
    """Monday of the week containing ``d``."""
    return d - timedelta(days=d.weekday())


def _field(data: dict, *names: str, default: Any = None) -> Any:
    """First present key among snake_case / camelCase spellings."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "on")
    return bool(value)


def _as_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def _require_mapping(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise ScheduleInputError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _require_list(value: Any, what: str) -> list:
    if isinstance(value, (str, bytes, dict)) or not isinstance(value, Iterable):
        raise ScheduleInputError(f"{what} must be a list, got {type(value).__name__}")
    return list(value)


@dataclass(frozen=True)
class TimeBlock:
    """A contiguous interval in minutes since midnight.

    Attributes:
        start: First minute of the block (inclusive).
        end: Last minute of the block (exclusive).
    """

    start: int
    end: int

    @classmethod
    def empty(cls) -> "TimeBlock":
        """The zero-length sentinel produced when grid snapping collapses."""
        return cls(0, 0)

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    @property
    def minutes(self) -> int:
        """Length of the block in minutes."""
        return max(0, self.end - self.start)

    def overlaps(self, other: "TimeBlock") -> bool:
        """Check if this block shares any minute with another."""
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeBlock") -> bool:
        """Check if another block lies entirely within this one."""
        return self.start <= other.start and other.end <= self.end

    @classmethod
    def parse_many(cls, value: Any, what: str = "blocks") -> list["TimeBlock"]:
        """Load a list of blocks from JSON-ish data.

        Accepts a window string (``"9-11, 1pm-3pm"``), or a list whose items
        are window strings, ``{"start": .., "end": ..}`` objects or
        ``[start, end]`` pairs. Non-positive blocks are dropped, as are blocks
        reaching outside the day.
        """
        from supsched.domain.clock import parse_window_string

        if value is None:
            return []
        if isinstance(value, str):
            return parse_window_string(value)

        blocks = []
        for item in _require_list(value, what):
            if isinstance(item, str):
                blocks.extend(parse_window_string(item))
                continue
            if isinstance(item, dict):
                start = _as_int(item.get("start"))
                end = _as_int(item.get("end"))
            elif isinstance(item, (list, tuple)) and len(item) == 2:
                start, end = _as_int(item[0]), _as_int(item[1])
            else:
                raise ScheduleInputError(f"Unrecognised block in {what}: {item!r}")
            if start is None or end is None or end <= start:
                continue
            if start < 0 or end > MINUTES_PER_DAY:
                logger.warning("Skipping out-of-day block %d-%d in %s", start, end, what)
                continue
            blocks.append(cls(start, end))
        blocks.sort(key=lambda b: b.start)
        return blocks

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


def _parse_day_blocks(value: Any, what: str) -> dict[DayKey, list[TimeBlock]]:
    """Load per-weekday blocks.

    Accepts ``{"mon": [...], ...}`` or ``[{"day": "mon", "blocks": [...]}]``.
    Entries for the same day accumulate; unknown day names are skipped.
    """
    result: dict[DayKey, list[TimeBlock]] = {}
    if value is None:
        return result

    if isinstance(value, dict):
        entries = list(value.items())
    else:
        entries = []
        for item in _require_list(value, what):
            item = _require_mapping(item, f"{what} entry")
            entries.append((item.get("day"), item.get("blocks")))

    for raw_day, raw_blocks in entries:
        day = DayKey.parse(raw_day) if raw_day is not None else None
        if day is None:
            logger.warning("Skipping unknown weekday %r in %s", raw_day, what)
            continue
        blocks = TimeBlock.parse_many(raw_blocks, f"{what}[{raw_day}]")
        if blocks:
            merged = result.get(day, []) + blocks
            result[day] = sorted(merged, key=lambda b: b.start)
    return result


def _parse_dated_blocks(value: Any, what: str) -> dict[date, list[TimeBlock]]:
    result: dict[date, list[TimeBlock]] = {}
    if value is None:
        return result
    for raw_date, raw_blocks in _require_mapping(value, what).items():
        blocks = TimeBlock.parse_many(raw_blocks, f"{what}[{raw_date}]")
        if blocks:
            d = parse_iso_date(raw_date)
            result[d] = result.get(d, []) + blocks
    return result


def _parse_dates(value: Any, what: str) -> set[date]:
    if value is None:
        return set()
    return {parse_iso_date(v) for v in _require_list(value, what)}


def _parse_day_slots(value: Any) -> list[list[DayKey]]:
    """Load preferred day groups.

    Accepts ``[["mon", "wed"], ["tue"]]`` and the wrapped
    ``[{"days": ["mon", "wed"]}]`` shape.
    """
    groups = []
    if value is None:
        return groups
    for entry in _require_list(value, "preferred_day_slots"):
        if isinstance(entry, dict):
            entry = entry.get("days") or []
        days = [DayKey.parse(d) for d in _require_list(entry, "preferred day group")]
        days = [d for d in days if d is not None]
        if days:
            groups.append(days)
    return groups


@dataclass
class Client:
    """A client receiving supervision sessions.

    Attributes:
        id: Unique identifier for the client.
        sup_percent: Percentage of authorized minutes to supervise (0-100).
            None means the record is incomplete.
        min_session_mins: Floor for any non-final placement. None means 60.
        max_sessions_per_week: Cap per Monday-start week (None = unbounded).
        max_sessions_per_day: Cap per calendar date (None = unbounded).
        prefer_no_sub_hour: Defer sub-60-minute placements when a later
            opportunity exists.
        preferred_day_slots: Groups of weekdays; membership in any group
            raises placement priority on that weekday.
        windows: Authorized (attendance) blocks per weekday.
    """

    id: str
    sup_percent: Optional[float] = None
    min_session_mins: Optional[int] = None
    max_sessions_per_week: Optional[int] = None
    max_sessions_per_day: Optional[int] = None
    prefer_no_sub_hour: bool = False
    preferred_day_slots: list[list[DayKey]] = field(default_factory=list)
    windows: dict[DayKey, list[TimeBlock]] = field(default_factory=dict)

    def windows_on(self, day: DayKey) -> list[TimeBlock]:
        """Authorized blocks for a weekday."""
        return self.windows.get(day, [])

    def has_window_on(self, day: DayKey) -> bool:
        return bool(self.windows.get(day))

    @property
    def window_days(self) -> set[DayKey]:
        """Distinct weekdays with at least one authorized block."""
        return {day for day, blocks in self.windows.items() if blocks}

    @property
    def effective_min_session(self) -> int:
        """Minimum session length used for placement decisions."""
        return max(MIN_SESSION_FLOOR, self.min_session_mins or DEFAULT_MIN_SESSION)

    def prefers_day(self, day: DayKey) -> bool:
        """Check if the weekday belongs to any preferred day group."""
        return any(day in group for group in self.preferred_day_slots)

    @classmethod
    def from_dict(cls, data: Any) -> "Client":
        data = _require_mapping(data, "client")
        client_id = _field(data, "id")
        if client_id is None or str(client_id).strip() == "":
            raise ScheduleInputError("client is missing an id")

        per_week = _field(data, "max_sessions_per_week", "maxSessionsPerWeek")
        per_day = _field(data, "max_sessions_per_day", "maxSessionsPerDay")
        return cls(
            id=str(client_id),
            sup_percent=_as_float(_field(data, "sup_percent", "supPercent")),
            min_session_mins=_as_int(_field(data, "min_session_mins", "minSessionMins")),
            max_sessions_per_week=_as_int(per_week) if per_week is not None else None,
            max_sessions_per_day=_as_int(per_day) if per_day is not None else None,
            prefer_no_sub_hour=_as_bool(
                _field(data, "prefer_no_sub_hour", "preferNoSubHour", default=False)
            ),
            preferred_day_slots=_parse_day_slots(
                _field(data, "preferred_day_slots", "preferredDaySlots")
            ),
            windows=_parse_day_blocks(_field(data, "windows"), f"client {client_id} windows"),
        )


@dataclass
class Supervisor:
    """The supervisor whose time is being allocated.

    Attributes:
        daily_avail: Available blocks per weekday.
        rounding_minutes: Grid for block boundaries (floor 5, default 15).
        one_off_unavail: Unavailable blocks on specific dates.
        unavailable_days: Dates the supervisor is fully closed.
    """

    daily_avail: dict[DayKey, list[TimeBlock]] = field(default_factory=dict)
    rounding_minutes: Optional[int] = None
    one_off_unavail: dict[date, list[TimeBlock]] = field(default_factory=dict)
    unavailable_days: set[date] = field(default_factory=set)

    @property
    def grid(self) -> int:
        """Active rounding grid in minutes."""
        return max(MIN_GRID, self.rounding_minutes or DEFAULT_GRID)

    def availability_on(self, day: DayKey) -> list[TimeBlock]:
        """Weekday availability with empty blocks dropped, sorted by start."""
        blocks = [b for b in self.daily_avail.get(day, []) if b.end > b.start]
        return sorted(blocks, key=lambda b: b.start)

    @classmethod
    def from_dict(cls, data: Any) -> "Supervisor":
        data = _require_mapping(data, "supervisor")
        return cls(
            daily_avail=_parse_day_blocks(
                _field(data, "daily_avail", "dailyAvail"), "supervisor availability"
            ),
            rounding_minutes=_as_int(_field(data, "rounding_minutes", "roundingMinutes")),
            one_off_unavail=_parse_dated_blocks(
                _field(data, "one_off_unavail", "oneOffUnavail"), "supervisor one-off unavailability"
            ),
            unavailable_days=_parse_dates(
                _field(data, "unavailable_days", "unavailableDays"), "supervisor unavailable days"
            ),
        )


@dataclass
class ScheduleRequest:
    """Immutable snapshot of everything a run schedules.

    Attributes:
        start_date: First date of the run.
        end_date: Last date of the run (inclusive).
        clients: Clients to schedule.
        supervisor: The supervisor and their availability.
    """

    start_date: date
    end_date: date
    clients: list[Client]
    supervisor: Supervisor = field(default_factory=Supervisor)

    @property
    def schedule_dates(self) -> list[date]:
        """All dates in the run, in calendar order."""
        return date_range(self.start_date, self.end_date)

    @property
    def grid(self) -> int:
        return self.supervisor.grid

    def get_client(self, client_id: str) -> Optional[Client]:
        for client in self.clients:
            if client.id == client_id:
                return client
        return None

    @classmethod
    def from_dict(cls, data: Any) -> "ScheduleRequest":
        data = _require_mapping(data, "request")
        clients = [
            Client.from_dict(c)
            for c in _require_list(_field(data, "clients", default=[]), "clients")
        ]
        return cls(
            start_date=parse_iso_date(_field(data, "start_date", "startDate")),
            end_date=parse_iso_date(_field(data, "end_date", "endDate")),
            clients=clients,
            supervisor=Supervisor.from_dict(_field(data, "supervisor", default={})),
        )

    def to_dict(self) -> dict:
        def day_blocks(mapping: dict[DayKey, list[TimeBlock]]) -> dict:
            return {day.value: [b.to_dict() for b in blocks] for day, blocks in mapping.items()}

        sup = self.supervisor
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "clients": [
                {
                    "id": c.id,
                    "sup_percent": c.sup_percent,
                    "min_session_mins": c.min_session_mins,
                    "max_sessions_per_week": c.max_sessions_per_week,
                    "max_sessions_per_day": c.max_sessions_per_day,
                    "prefer_no_sub_hour": c.prefer_no_sub_hour,
                    "preferred_day_slots": [[d.value for d in g] for g in c.preferred_day_slots],
                    "windows": day_blocks(c.windows),
                }
                for c in self.clients
            ],
            "supervisor": {
                "daily_avail": day_blocks(sup.daily_avail),
                "rounding_minutes": sup.rounding_minutes,
                "one_off_unavail": {
                    d.isoformat(): [b.to_dict() for b in blocks]
                    for d, blocks in sorted(sup.one_off_unavail.items())
                },
                "unavailable_days": sorted(d.isoformat() for d in sup.unavailable_days),
            },
        }


@dataclass(frozen=True)
class ScheduledBlock:
    """A placed supervision session.

    Identity is the full ``(date, client_id, start, end)`` tuple; two blocks
    are the same block iff all four fields match.
    """

    date: date
    client_id: str
    start: int
    end: int

    @property
    def minutes(self) -> int:
        return self.end - self.start

    @property
    def key(self) -> tuple[date, str, int, int]:
        """Identity key used for lock membership."""
        return (self.date, self.client_id, self.start, self.end)

    @property
    def span(self) -> TimeBlock:
        return TimeBlock(self.start, self.end)

    @property
    def day(self) -> DayKey:
        return DayKey.from_date(self.date)

    def with_end(self, end: int) -> "ScheduledBlock":
        return ScheduledBlock(self.date, self.client_id, self.start, end)

    def sort_key(self) -> tuple[date, int, str]:
        return (self.date, self.start, self.client_id)

    @classmethod
    def from_dict(cls, data: Any) -> "ScheduledBlock":
        data = _require_mapping(data, "scheduled block")
        start = _as_int(data.get("start"))
        end = _as_int(data.get("end"))
        client_id = _field(data, "client_id", "clientId")
        if start is None or end is None or client_id is None:
            raise ScheduleInputError(f"Incomplete scheduled block: {data!r}")
        return cls(parse_iso_date(data.get("date")), str(client_id), start, end)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "client_id": self.client_id,
            "start": self.start,
            "end": self.end,
        }


@dataclass
class RunParameters:
    """Side-channel parameters for a single allocation run.

    Attributes:
        locked_blocks: Blocks the run must preserve and treat as consumed.
        target_overrides: Client ID to target minutes, replacing the default.
        closed_days: Dates closed for this run only.
        one_off_exclusions: Blocks excluded on specific dates for this run.
    """

    locked_blocks: list[ScheduledBlock] = field(default_factory=list)
    target_overrides: dict[str, int] = field(default_factory=dict)
    closed_days: set[date] = field(default_factory=set)
    one_off_exclusions: dict[date, list[TimeBlock]] = field(default_factory=dict)

    def locked_on(self, d: date) -> list[ScheduledBlock]:
        return [b for b in self.locked_blocks if b.date == d]

    @classmethod
    def from_dict(cls, data: Any) -> "RunParameters":
        data = _require_mapping(data or {}, "run parameters")

        overrides: dict[str, int] = {}
        hours = _field(data, "target_overrides_hours", "targetOverridesHours")
        if hours is not None:
            for client_id, value in _require_mapping(hours, "target_overrides_hours").items():
                number = _as_float(value)
                if number is not None:
                    overrides[str(client_id)] = int(round(number * 60))
        minutes = _field(data, "target_overrides", "targetOverrides", "targetMap")
        if minutes is not None:
            for client_id, value in _require_mapping(minutes, "target_overrides").items():
                number = _as_int(value)
                if number is not None:
                    overrides[str(client_id)] = number

        return cls(
            locked_blocks=[
                ScheduledBlock.from_dict(b)
                for b in _require_list(_field(data, "locked", "locked_blocks", default=[]), "locked")
            ],
            target_overrides=overrides,
            closed_days=_parse_dates(
                _field(data, "closed_days", "runUnavailableDays"), "closed_days"
            ),
            one_off_exclusions=_parse_dated_blocks(
                _field(data, "one_off_exclusions", "runOneOffUnavail"), "one_off_exclusions"
            ),
        )


class LockSet:
    """Set of locked blocks keyed by block identity.

    Example:
        >>> locks = LockSet()
        >>> locks.toggle(block)
        True
        >>> block in locks
        True
    """

    def __init__(self, blocks: Iterable[ScheduledBlock] = ()):
        self._blocks: dict[tuple, ScheduledBlock] = {}
        self.lock_all(blocks)

    def __contains__(self, block: object) -> bool:
        return isinstance(block, ScheduledBlock) and block.key in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[ScheduledBlock]:
        return iter(self._blocks.values())

    def is_locked(self, block: ScheduledBlock) -> bool:
        return block.key in self._blocks

    def toggle(self, block: ScheduledBlock) -> bool:
        """Flip the lock on a block. Returns True if it is now locked."""
        if block.key in self._blocks:
            del self._blocks[block.key]
            return False
        self._blocks[block.key] = block
        return True

    def lock_all(self, blocks: Iterable[ScheduledBlock]) -> None:
        for block in blocks:
            self._blocks[block.key] = block

    def unlock_all(self, blocks: Iterable[ScheduledBlock]) -> None:
        for block in blocks:
            self._blocks.pop(block.key, None)

    @property
    def blocks(self) -> list[ScheduledBlock]:
        return list(self._blocks.values())


def sort_blocks(blocks: Iterable[ScheduledBlock]) -> list[ScheduledBlock]:
    """Blocks ordered by date, then start, then client."""
    return sorted(blocks, key=lambda b: b.sort_key())


def group_by_week(blocks: Iterable[ScheduledBlock]) -> dict[date, list[ScheduledBlock]]:
    """Group blocks by the Monday of their week, each group sorted."""
    weeks: dict[date, list[ScheduledBlock]] = defaultdict(list)
    for block in blocks:
        weeks[week_start(block.date)].append(block)
    return {wk: sort_blocks(weeks[wk]) for wk in sorted(weeks)}


def load_request(path: Union[str, Path]) -> tuple[ScheduleRequest, RunParameters]:
    """Load a request and its run parameters from a JSON file.

    The document holds the request fields at the top level and optional run
    parameters under ``"run"``.
    """
    data = json.loads(Path(path).read_text())
    data = _require_mapping(data, "input document")
    request = ScheduleRequest.from_dict(data)
    params = RunParameters.from_dict(data.get("run") or {})
    return request, params
