from sqlalchemy import select, func
from sqlalchemy.orm import Session

from app.data.models.team_member import TeamMemberModel
from app.repos.cart_repo import io_errors


class MemberRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_member(self, member_id: str) -> TeamMemberModel | None:
        with io_errors():
            return self.db.get(TeamMemberModel, member_id)

    def get_members(self, member_ids: list[str]) -> dict[str, TeamMemberModel]:
        if not member_ids:
            return {}
        stmt = select(TeamMemberModel).where(TeamMemberModel.id.in_(member_ids))
        with io_errors():
            return {m.id: m for m in self.db.execute(stmt).scalars().all()}

    def find_by_email(self, team_id: str, email: str) -> TeamMemberModel | None:
        stmt = select(TeamMemberModel).where(
            TeamMemberModel.team_id == team_id,
            func.lower(TeamMemberModel.email) == email.strip().lower(),
        )
        with io_errors():
            return self.db.execute(stmt).scalars().first()

    def create_member(self, member: TeamMemberModel) -> TeamMemberModel:
        with io_errors():
            self.db.add(member)
            self.db.commit()
            self.db.refresh(member)
        return member
