import pytest

from app.domain.errors import NotFoundOrForbidden, ValidationError
from app.domain.schemas import TeamMemberCreate
from app.services.member_service import MemberService
from conftest import ALICE, BOB, CAROL, OWNER, RESTAURANT, TEAM


@pytest.fixture
def members(seeded):
    return MemberService(seeded)


@pytest.fixture
def cart_id(service):
    return service.ensure_cart(TEAM, RESTAURANT, created_by_member_id=OWNER)


class TestTeamMembers:
    def test_create_is_idempotent(self, members):
        created = members.create_member(TeamMemberCreate(id="m-9", team_id=TEAM, full_name="Nina", email=" Nina@Example.com "))
        assert created.email == "nina@example.com"
        again = members.create_member(TeamMemberCreate(id="m-9", team_id=TEAM, full_name="Other"))
        assert again.full_name == "Nina"

    def test_get_missing(self, members):
        with pytest.raises(NotFoundOrForbidden):
            members.get_member("nobody")


class TestCartMembership:
    def test_join_is_idempotent(self, members, cart_id):
        assert members.join_cart(cart_id, ALICE) is True
        assert members.join_cart(cart_id, ALICE) is False

    def test_join_unknown_cart(self, members):
        with pytest.raises(NotFoundOrForbidden):
            members.join_cart("missing", ALICE)

    def test_join_with_email(self, members, cart_id):
        assert members.join_cart_with_email(cart_id, "BOB@example.com") == BOB
        detailed = members.list_cart_members_detailed(cart_id)
        assert detailed == [
            {"member_id": OWNER, "display_name": "Olive Owner", "email": "olive@example.com", "joined_via": "roster"},
            {"member_id": BOB, "display_name": "Bob", "email": "bob@example.com", "joined_via": "email_link"},
        ]

    def test_join_with_unknown_email(self, members, cart_id):
        with pytest.raises(ValidationError):
            members.join_cart_with_email(cart_id, "stranger@example.com")
        with pytest.raises(ValidationError):
            members.join_cart_with_email(cart_id, "not-an-email")

    def test_sync_diffs_membership(self, members, cart_id):
        members.join_cart(cart_id, ALICE)
        result = members.sync_cart_members(cart_id, [ALICE, BOB, CAROL, BOB])
        assert result == {"added": [BOB, CAROL], "removed": [OWNER]}
        assert [m["member_id"] for m in members.list_cart_members_detailed(cart_id)] == [ALICE, BOB, CAROL]
