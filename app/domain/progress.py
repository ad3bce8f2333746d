# app/domain/progress.py
"""Team order progress for one cart.

Works on plain values only: a roster and the cart's rows in display order.
Everything here is deterministic for a given input order.
"""
from dataclasses import dataclass, field

MEDAL_COUNT = 3
FALLBACK_NAME = "Team member"


@dataclass(frozen=True)
class RosterMember:
    id: str
    display_name: str = FALLBACK_NAME


@dataclass(frozen=True)
class Claim:
    member_id: str
    units: int = 1
    display_name: str | None = None


@dataclass(frozen=True)
class ProgressItem:
    quantity: int
    claims: tuple = ()
    extra_units: int = 0
    added_by_member_id: str | None = None


@dataclass
class MemberProgress:
    id: str
    display_name: str
    has_ordered: bool = False
    order_index: int | None = None
    source_item_index: int | None = None
    medal: int | None = None
    assist_count: int = 0
    is_owner: bool = False


@dataclass
class Progress:
    ordered_members: list = field(default_factory=list)
    waiting_members: list = field(default_factory=list)
    extras_count: int = 0
    unassigned_count: int = 0
    has_recipients: bool = False
    assignment_members: list = field(default_factory=list)


def roster_member(raw) -> RosterMember:
    if isinstance(raw, RosterMember):
        return raw
    get = raw.get if isinstance(raw, dict) else lambda key, default=None: getattr(raw, key, default)
    name = get("display_name") or get("full_name") or get("email") or FALLBACK_NAME
    return RosterMember(id=get("id"), display_name=name)


def progress_items(rows) -> list[ProgressItem]:
    """Adapt snapshot rows (one owner kind each) to progress input."""
    items = []
    for row in rows:
        quantity = int(row.get("quantity") or 0)
        member_id = row.get("member_id")
        claims = (Claim(member_id=member_id, units=quantity, display_name=row.get("member_name")),) if member_id else ()
        items.append(
            ProgressItem(
                quantity=quantity,
                claims=claims,
                extra_units=quantity if row.get("is_extra") else 0,
                added_by_member_id=row.get("added_by_member_id"),
            )
        )
    return items


def _name_key(member: MemberProgress) -> str:
    return member.display_name.lower()


def compute_progress(roster, items, owner_member_id: str | None = None) -> Progress:
    members: dict[str, MemberProgress] = {}
    for raw in roster or []:
        entry = roster_member(raw)
        if entry.id and entry.id not in members:
            members[entry.id] = MemberProgress(id=entry.id, display_name=entry.display_name)

    first_claims: dict[str, tuple[int, int]] = {}
    extras_count = 0
    unassigned_count = 0

    for item_index, item in enumerate(items):
        claimed_units = 0
        for claim in item.claims:
            if not claim.member_id:
                continue
            if claim.member_id not in members:
                members[claim.member_id] = MemberProgress(
                    id=claim.member_id, display_name=claim.display_name or FALLBACK_NAME
                )
            if claim.member_id not in first_claims:
                first_claims[claim.member_id] = (len(first_claims), item_index)
            claimed_units += max(0, int(claim.units))

        extra_units = max(0, int(item.extra_units or 0))
        extras_count += extra_units
        unassigned_count += max(0, int(item.quantity or 0) - claimed_units - extra_units)

    # members the organizer ordered for are not racing for medals
    owner_added = set()
    if owner_member_id:
        for item in items:
            if item.added_by_member_id == owner_member_id:
                owner_added.update(c.member_id for c in item.claims if c.member_id)

    assists: dict[str, int] = {}
    for item in items:
        adder = item.added_by_member_id
        if not adder:
            continue
        recipients = {c.member_id for c in item.claims if c.member_id and c.member_id != adder}
        if recipients:
            assists[adder] = assists.get(adder, 0) + len(recipients)

    eligible = [
        member_id
        for member_id in first_claims
        if member_id != owner_member_id and member_id not in owner_added
    ]
    eligible.sort(key=lambda member_id: first_claims[member_id][0])
    medals = {member_id: rank for rank, member_id in enumerate(eligible[:MEDAL_COUNT], start=1)}

    for member in members.values():
        claim = first_claims.get(member.id)
        member.has_ordered = claim is not None
        member.order_index = claim[0] if claim else None
        member.source_item_index = claim[1] if claim else None
        member.is_owner = bool(owner_member_id) and member.id == owner_member_id
        member.medal = None if member.is_owner else medals.get(member.id)
        member.assist_count = assists.get(member.id, 0)

    ordered = sorted(
        (m for m in members.values() if m.has_ordered),
        key=lambda m: (m.order_index is None, m.order_index or 0, _name_key(m)),
    )
    waiting = sorted((m for m in members.values() if not m.has_ordered), key=_name_key)

    assignment_members = [member_id for member_id in first_claims if member_id != owner_member_id]

    return Progress(
        ordered_members=ordered,
        waiting_members=waiting,
        extras_count=extras_count,
        unassigned_count=unassigned_count,
        has_recipients=bool(assignment_members),
        assignment_members=assignment_members,
    )
