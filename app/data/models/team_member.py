from sqlalchemy import Column, String

from app.data.database import Base


class TeamMemberModel(Base):
    __tablename__ = "team_members"

    id = Column(String(36), primary_key=True)
    team_id = Column(String(36), nullable=False, index=True)
    full_name = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)
