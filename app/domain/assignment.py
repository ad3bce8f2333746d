# app/domain/assignment.py
"""Who a cart row is for.

Callers describe ownership loosely (lists of member ids, a legacy single id,
per-member unit counts, extra counts given as numbers or lists, an
``__EXTRA__`` sentinel, "Extra" display names). ``parse_assignment`` turns
that into one of three strict shapes and ``resolve_assignment`` reduces it to
the single owner kind a row can hold.
"""
import math
import re
from dataclasses import dataclass
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EXTRA_SENTINEL = "__EXTRA__"

_MEMBER_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
_EXTRA_NAME_RE = re.compile(r"^extras?$", re.IGNORECASE)


def is_member_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_MEMBER_ID_RE.match(value))


class AssignmentRequest(BaseModel):
    """Loose assignment input as sent by clients (snake or camel case)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    member_ids: list[Any] = Field(default_factory=list)
    member_id: Any = None
    units_by_member: dict[str, Any] = Field(default_factory=dict)
    extra_count: Union[float, list[Any], None] = None
    display_names: list[Any] = Field(default_factory=list)


@dataclass(frozen=True)
class PerMember:
    # ordered (member_id, units or None) pairs
    units: tuple


@dataclass(frozen=True)
class Extras:
    count: float


@dataclass(frozen=True)
class Unassigned:
    pass


Assignment = Union[PerMember, Extras, Unassigned]


@dataclass(frozen=True)
class ResolvedAssignment:
    quantity: int
    member_id: str | None
    is_extra: bool


def _to_int(value: Any, default: int = 1) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return math.floor(number)


def clamp_quantity(value: Any) -> int:
    return max(1, _to_int(value))


def _count(value: Any) -> float:
    if value is None:
        return 0
    if isinstance(value, (list, tuple)):
        return len(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return number if number > 0 else 0


def parse_assignment(raw: Any) -> Assignment:
    """Parse a loose assignment payload once, at the edge."""
    if raw is None:
        return Unassigned()
    if isinstance(raw, (PerMember, Extras, Unassigned)):
        return raw
    request = raw if isinstance(raw, AssignmentRequest) else AssignmentRequest.model_validate(raw)

    candidates = list(request.member_ids)
    if request.member_id is not None:
        candidates.append(request.member_id)
    candidates.extend(request.units_by_member.keys())

    member_ids = []
    for candidate in candidates:
        # ids failing the format check are dropped, not rejected
        if is_member_id(candidate) and candidate not in member_ids:
            member_ids.append(candidate)

    if member_ids:
        return PerMember(
            units=tuple((mid, request.units_by_member.get(mid)) for mid in member_ids)
        )

    sentinel_extras = sum(1 for c in candidates if c == EXTRA_SENTINEL)
    named_extras = sum(
        1 for n in request.display_names if isinstance(n, str) and _EXTRA_NAME_RE.match(n.strip())
    )
    extra = max(_count(request.extra_count), sentinel_extras, named_extras)
    if extra > 0:
        return Extras(count=extra)
    return Unassigned()


def resolve_assignment(quantity: Any, request: Any = None) -> ResolvedAssignment:
    requested = clamp_quantity(quantity)
    assignment = parse_assignment(request)

    if isinstance(assignment, PerMember):
        member_id, units = assignment.units[0]
        resolved_qty = clamp_quantity(units) if units is not None else requested
        return ResolvedAssignment(quantity=resolved_qty, member_id=member_id, is_extra=False)

    if isinstance(assignment, Extras):
        return ResolvedAssignment(quantity=clamp_quantity(assignment.count), member_id=None, is_extra=True)

    return ResolvedAssignment(quantity=requested, member_id=None, is_extra=False)


def split_assignment(quantity: Any, assignees: list) -> list[tuple[int, Assignment]]:
    """Plan the rows for one logical add shared by several people.

    Each assignee entry claims one unit: a member id (or ``{"id", "name"}``
    dict) claims it for that member, the extra sentinel or an "Extra" name
    puts it in the extras bucket. Units nobody claimed become one unassigned
    row. Members listed more than once get a single row with their count.
    """
    member_units: dict[str, int] = {}
    extras = 0
    claimed = 0

    for entry in assignees or []:
        if entry is None:
            continue
        if isinstance(entry, dict):
            entry_id = entry.get("id")
            name = entry.get("name") or entry.get("full_name") or ""
        else:
            entry_id, name = entry, ""

        if entry_id == EXTRA_SENTINEL or (isinstance(name, str) and _EXTRA_NAME_RE.match(name.strip())):
            extras += 1
            claimed += 1
        elif is_member_id(entry_id):
            member_units[entry_id] = member_units.get(entry_id, 0) + 1
            claimed += 1

    rows: list[tuple[int, Assignment]] = [
        (units, PerMember(units=((mid, units),))) for mid, units in member_units.items()
    ]
    if extras:
        rows.append((extras, Extras(count=extras)))

    remaining = max(0, clamp_quantity(quantity) - claimed)
    if remaining or not rows:
        rows.append((max(1, remaining), Unassigned()))
    return rows
