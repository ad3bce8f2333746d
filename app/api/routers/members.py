from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.schemas import (
    CartMemberOut,
    JoinCartIn,
    JoinEmailIn,
    SyncMembersIn,
    TeamMemberCreate,
    TeamMemberRead,
)
from app.services.member_service import MemberService

router = APIRouter(prefix="/members", tags=["members"])


@router.post("/", response_model=TeamMemberRead)
def create_member(payload: TeamMemberCreate, db: Session = Depends(get_db)):
    return MemberService(db).create_member(payload)


@router.get("/{member_id}", response_model=TeamMemberRead)
def get_member(member_id: str, db: Session = Depends(get_db)):
    return MemberService(db).get_member(member_id)


@router.get("/carts/{cart_id}", response_model=List[CartMemberOut])
def list_cart_members(cart_id: str, db: Session = Depends(get_db)):
    return MemberService(db).list_cart_members_detailed(cart_id)


@router.post("/carts/{cart_id}/join")
def join_cart(cart_id: str, payload: JoinCartIn, db: Session = Depends(get_db)):
    joined = MemberService(db).join_cart(cart_id, payload.member_id)
    return {"cart_id": cart_id, "member_id": payload.member_id, "joined": joined}


@router.post("/carts/{cart_id}/join-email")
def join_cart_with_email(cart_id: str, payload: JoinEmailIn, db: Session = Depends(get_db)):
    member_id = MemberService(db).join_cart_with_email(cart_id, payload.email)
    return {"cart_id": cart_id, "member_id": member_id}


@router.put("/carts/{cart_id}")
def sync_cart_members(cart_id: str, payload: SyncMembersIn, db: Session = Depends(get_db)):
    return MemberService(db).sync_cart_members(cart_id, payload.member_ids)
