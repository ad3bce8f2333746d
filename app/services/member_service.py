from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.data.models.team_member import TeamMemberModel
from app.domain.errors import NotFoundOrForbidden, ValidationError
from app.domain.schemas import TeamMemberCreate, TeamMemberRead
from app.repos.cart_repo import CartRepo
from app.repos.member_repo import MemberRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


class MemberService:
    """Team roster copy and per-cart membership (who is taking part in a cart)."""

    def __init__(self, db: Session):
        self.repo = MemberRepo(db)
        self.carts = CartRepo(db)

    def create_member(self, payload: TeamMemberCreate) -> TeamMemberRead:
        existing = self.repo.get_member(payload.id)
        if existing:
            return TeamMemberRead.model_validate(existing)

        member = TeamMemberModel(
            id=payload.id,
            team_id=payload.team_id,
            full_name=payload.full_name,
            email=payload.email.strip().lower() if payload.email else None,
        )
        created = self.repo.create_member(member)
        return TeamMemberRead.model_validate(created)

    def get_member(self, member_id: str) -> TeamMemberRead:
        member = self.repo.get_member(member_id)
        if not member:
            raise NotFoundOrForbidden(f"Member {member_id} not found")
        return TeamMemberRead.model_validate(member)

    def _require_cart(self, cart_id: str):
        cart = self.carts.get_cart(cart_id)
        if cart is None:
            raise NotFoundOrForbidden(f"Cart {cart_id} not found")
        return cart

    def join_cart(self, cart_id: str, member_id: str, joined_via: str = "roster") -> bool:
        self._require_cart(cart_id)
        if not member_id:
            raise ValidationError("member_id is required")
        joined = self.carts.add_cart_member(cart_id, member_id, joined_via)
        if joined:
            logger.info(f"Member {member_id} joined cart {cart_id} via {joined_via}")
        return joined

    def join_cart_with_email(self, cart_id: str, email: str) -> str:
        """Join through a shared link: the email must belong to the cart's team."""
        cart = self._require_cart(cart_id)
        email = (email or "").strip()
        if "@" not in email:
            raise ValidationError("a valid email is required")

        member = self.repo.find_by_email(cart.team_id, email)
        if member is None:
            raise ValidationError(f"{email} is not a member of this team")
        self.carts.add_cart_member(cart_id, member.id, "email_link")
        logger.info(f"Member {member.id} joined cart {cart_id} by email link")
        return member.id

    def list_cart_members_detailed(self, cart_id: str) -> List[Dict[str, Any]]:
        self._require_cart(cart_id)
        rows = self.carts.get_cart_members(cart_id)
        team = self.repo.get_members([r.member_id for r in rows])
        out = []
        for row in rows:
            member = team.get(row.member_id)
            out.append(
                {
                    "member_id": row.member_id,
                    "display_name": (member.full_name or member.email) if member else "Team member",
                    "email": member.email if member else None,
                    "joined_via": row.joined_via,
                }
            )
        return out

    def sync_cart_members(self, cart_id: str, member_ids: List[str]) -> Dict[str, List[str]]:
        """Make the cart roster exactly ``member_ids`` by diffing against what is stored."""
        self._require_cart(cart_id)
        desired = list(dict.fromkeys(m for m in member_ids if m))
        existing = [r.member_id for r in self.carts.get_cart_members(cart_id)]

        to_add = [m for m in desired if m not in existing]
        to_remove = [m for m in existing if m not in desired]

        for member_id in to_add:
            self.carts.add_cart_member(cart_id, member_id, "roster")
        self.carts.remove_cart_members(cart_id, to_remove)

        logger.info(f"Synced members of cart {cart_id}: +{len(to_add)} -{len(to_remove)}")
        return {"added": to_add, "removed": to_remove}
