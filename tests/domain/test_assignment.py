from app.domain.assignment import (
    EXTRA_SENTINEL,
    AssignmentRequest,
    Extras,
    PerMember,
    Unassigned,
    parse_assignment,
    resolve_assignment,
    split_assignment,
)

M1 = "0b8e7c52-55a1-4f7e-8d1c-3f2a1b0c9d01"
M2 = "0b8e7c52-55a1-4f7e-8d1c-3f2a1b0c9d02"


class TestResolveAssignment:
    def test_per_member_units_override_requested_quantity(self):
        resolved = resolve_assignment(3, {"member_ids": [M1], "units_by_member": {M1: 2}})
        assert (resolved.quantity, resolved.member_id, resolved.is_extra) == (2, M1, False)

    def test_first_member_wins(self):
        resolved = resolve_assignment(4, {"member_ids": [M2, M1]})
        assert resolved.member_id == M2
        assert resolved.quantity == 4

    def test_legacy_single_member_id(self):
        resolved = resolve_assignment(1, {"memberId": M1})
        assert resolved.member_id == M1

    def test_camel_case_payload(self):
        resolved = resolve_assignment(5, {"memberIds": [M1], "unitsByMember": {M1: "3"}})
        assert resolved.quantity == 3

    def test_per_member_units_clamped_to_one(self):
        resolved = resolve_assignment(3, {"member_ids": [M1], "units_by_member": {M1: 0}})
        assert resolved.quantity == 1

    def test_extras_only(self):
        resolved = resolve_assignment(4, {"extra_count": 2})
        assert (resolved.quantity, resolved.member_id, resolved.is_extra) == (2, None, True)

    def test_extra_count_given_as_list(self):
        resolved = resolve_assignment(4, {"extra_count": ["a", "b", "c"]})
        assert resolved.quantity == 3
        assert resolved.is_extra

    def test_fractional_extra_count_is_floored(self):
        assert resolve_assignment(4, {"extra_count": 2.7}).quantity == 2

    def test_extra_sentinel_and_extra_names(self):
        assert resolve_assignment(1, {"member_ids": [EXTRA_SENTINEL]}).is_extra
        assert resolve_assignment(1, {"display_names": ["Extras"]}).is_extra

    def test_member_beats_extras(self):
        resolved = resolve_assignment(2, {"member_ids": [M1], "extra_count": 5})
        assert resolved.member_id == M1
        assert not resolved.is_extra

    def test_invalid_member_ids_are_dropped(self):
        resolved = resolve_assignment(2, {"member_ids": ["not-a-uuid", "m1"]})
        assert (resolved.quantity, resolved.member_id, resolved.is_extra) == (2, None, False)

    def test_unassigned_clamps_quantity(self):
        assert resolve_assignment(0).quantity == 1
        assert resolve_assignment("nope").quantity == 1
        assert resolve_assignment(-3, None).quantity == 1

    def test_owner_kinds_are_exclusive(self):
        for request in ({"member_ids": [M1]}, {"extra_count": 1}, None, {"member_ids": ["bad"]}):
            resolved = resolve_assignment(2, request)
            assert not (resolved.member_id and resolved.is_extra)
            assert resolved.quantity >= 1


class TestParseAssignment:
    def test_shapes(self):
        assert parse_assignment(None) == Unassigned()
        assert parse_assignment({"extra_count": 1}) == Extras(count=1)
        assert parse_assignment(AssignmentRequest(member_ids=[M1, M1, M2])) == PerMember(
            units=((M1, None), (M2, None))
        )

    def test_units_by_member_keys_count_as_members(self):
        parsed = parse_assignment({"units_by_member": {M2: 2}})
        assert parsed == PerMember(units=((M2, 2),))


class TestSplitAssignment:
    def test_one_row_per_member_plus_remainder(self):
        rows = split_assignment(4, [M1, M2, M1])
        assert rows == [
            (2, PerMember(units=((M1, 2),))),
            (1, PerMember(units=((M2, 1),))),
            (1, Unassigned()),
        ]

    def test_extras_row(self):
        rows = split_assignment(2, [{"id": M1, "name": "Ann"}, {"id": None, "name": "Extra"}])
        assert rows == [(1, PerMember(units=((M1, 1),))), (1, Extras(count=1))]

    def test_nobody_assigned_gives_single_unassigned_row(self):
        assert split_assignment(3, []) == [(3, Unassigned())]

    def test_units_are_conserved(self):
        rows = split_assignment(5, [M1, EXTRA_SENTINEL, M2])
        assert sum(quantity for quantity, _ in rows) == 5
