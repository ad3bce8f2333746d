from app.domain.progress import (
    Claim,
    ProgressItem,
    RosterMember,
    compute_progress,
    progress_items,
    roster_member,
)

OWNER, ANN, BEN, CAT, DAN, EVE = "owner", "ann", "ben", "cat", "dan", "eve"

ROSTER = [
    RosterMember(OWNER, "Olive"),
    RosterMember(ANN, "ann"),
    RosterMember(BEN, "Ben"),
    RosterMember(CAT, "Cat"),
    RosterMember(DAN, "Dan"),
    RosterMember(EVE, "eve"),
]


def row(quantity, *claims, extra=0, added_by=None):
    return ProgressItem(
        quantity=quantity,
        claims=tuple(Claim(member_id=m, units=u) for m, u in claims),
        extra_units=extra,
        added_by_member_id=added_by,
    )


class TestCounts:
    def test_extras_and_unassigned(self):
        items = [row(3, (ANN, 1), extra=1), row(2), row(1, (BEN, 1))]
        progress = compute_progress(ROSTER, items, OWNER)
        assert progress.extras_count == 1
        assert progress.unassigned_count == 3

    def test_conservation(self):
        items = [row(4, (ANN, 2), extra=1), row(2, (BEN, 2)), row(5)]
        progress = compute_progress(ROSTER, items, OWNER)
        claimed = sum(c.units for item in items for c in item.claims)
        assert claimed + progress.extras_count + progress.unassigned_count == 11


class TestOrdering:
    def test_ordered_by_first_claim_waiting_by_name(self):
        items = [row(1, (CAT, 1)), row(1, (ANN, 1)), row(1, (CAT, 1))]
        progress = compute_progress(ROSTER, items, OWNER)
        assert [m.id for m in progress.ordered_members] == [CAT, ANN]
        assert [m.order_index for m in progress.ordered_members] == [0, 1]
        assert [m.source_item_index for m in progress.ordered_members] == [0, 1]
        assert [m.id for m in progress.waiting_members] == [BEN, DAN, EVE, OWNER]

    def test_unknown_claimant_gets_fallback_name(self):
        progress = compute_progress([], [row(1, ("ghost", 1))], None)
        assert progress.ordered_members[0].display_name == "Team member"

    def test_deterministic(self):
        items = [row(1, (EVE, 1)), row(2, (BEN, 1), (ANN, 1), added_by=EVE), row(1, (DAN, 1))]
        first = compute_progress(ROSTER, items, OWNER)
        second = compute_progress(ROSTER, items, OWNER)
        assert first == second


class TestMedals:
    def test_first_three_eligible_claimants(self):
        items = [row(1, (m, 1)) for m in (BEN, ANN, CAT, DAN)]
        progress = compute_progress(ROSTER, items, OWNER)
        medals = {m.id: m.medal for m in progress.ordered_members}
        assert medals == {BEN: 1, ANN: 2, CAT: 3, DAN: None}

    def test_owner_and_owner_added_excluded(self):
        items = [
            row(1, (OWNER, 1)),
            row(1, (ANN, 1), added_by=OWNER),
            row(1, (BEN, 1), added_by=BEN),
            row(1, (CAT, 1)),
        ]
        progress = compute_progress(ROSTER, items, OWNER)
        medals = {m.id: m.medal for m in progress.ordered_members}
        assert medals[OWNER] is None
        assert medals[ANN] is None
        assert medals[BEN] == 1
        assert medals[CAT] == 2
        owner = next(m for m in progress.ordered_members if m.id == OWNER)
        assert owner.is_owner

    def test_assignment_members_exclude_owner(self):
        items = [row(1, (OWNER, 1)), row(1, (ANN, 1))]
        progress = compute_progress(ROSTER, items, OWNER)
        assert progress.assignment_members == [ANN]
        assert progress.has_recipients

    def test_no_recipients(self):
        progress = compute_progress(ROSTER, [row(2, (OWNER, 2))], OWNER)
        assert not progress.has_recipients


class TestAssists:
    def test_counted_per_item_per_other_recipient(self):
        items = [
            row(2, (ANN, 1), (BEN, 1), added_by=EVE),
            row(1, (EVE, 1), added_by=EVE),
            row(1, (CAT, 1), added_by=EVE),
        ]
        progress = compute_progress(ROSTER, items, OWNER)
        eve = next(m for m in progress.ordered_members if m.id == EVE)
        assert eve.assist_count == 3


class TestAdapters:
    def test_roster_member_from_dict(self):
        assert roster_member({"id": "x", "email": "x@example.com"}).display_name == "x@example.com"
        assert roster_member({"id": "y"}).display_name == "Team member"

    def test_progress_items_from_snapshot_rows(self):
        items = progress_items(
            [
                {"quantity": 2, "member_id": ANN, "member_name": "Ann", "added_by_member_id": BEN},
                {"quantity": 3, "is_extra": True},
                {"quantity": 1},
            ]
        )
        assert items[0].claims == (Claim(member_id=ANN, units=2, display_name="Ann"),)
        assert items[1].extra_units == 3
        assert items[2].claims == ()
