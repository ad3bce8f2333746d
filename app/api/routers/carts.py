#app/api/routers/carts.py
from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.schemas import (
    BadgeOut,
    CartIdOut,
    CartOut,
    EnsureCartIn,
    FindCartIn,
    FulfillmentIn,
    ItemIdOut,
    ItemIdsOut,
    ItemPatch,
    NewItem,
    OpenCartOut,
    ProgressOut,
    SnapshotOut,
    SplitItemIn,
    TitleIn,
)
from app.services.cart_service import CartService
from app.services.events import build_event_bus

router = APIRouter(prefix="/carts", tags=["carts"])

event_bus = build_event_bus()


def get_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db=db, events=event_bus)


@router.post("/ensure", response_model=CartIdOut)
def ensure_cart(payload: EnsureCartIn, svc: CartService = Depends(get_service)):
    cart_id = svc.ensure_cart(
        payload.team_id,
        payload.restaurant_id,
        title=payload.title,
        provider_type=payload.provider_type,
        provider_restaurant_id=payload.provider_restaurant_id,
        fulfillment=payload.fulfillment,
        meal_type=payload.meal_type,
        created_by_member_id=payload.created_by_member_id,
    )
    return {"cart_id": cart_id}


@router.post("/find", response_model=CartIdOut)
def find_active_cart(payload: FindCartIn, svc: CartService = Depends(get_service)):
    cart_id = svc.find_active_cart(
        payload.team_id,
        payload.restaurant_id,
        provider_type=payload.provider_type,
        fulfillment=payload.fulfillment,
        meal_type=payload.meal_type,
    )
    return {"cart_id": cart_id}


@router.get("/open", response_model=List[OpenCartOut])
def list_open_carts(team_id: str = Query(...), svc: CartService = Depends(get_service)):
    return svc.list_open_carts(team_id)


@router.get("/{cart_id}", response_model=SnapshotOut)
def get_snapshot(cart_id: str, svc: CartService = Depends(get_service)):
    return svc.get_snapshot(cart_id)


@router.get("/{cart_id}/progress", response_model=ProgressOut)
def get_progress(cart_id: str, svc: CartService = Depends(get_service)):
    return asdict(svc.get_progress(cart_id))


@router.get("/{cart_id}/badge", response_model=BadgeOut)
def get_badge(cart_id: str, svc: CartService = Depends(get_service)):
    return svc.get_badge(cart_id)


@router.post("/{cart_id}/items", response_model=ItemIdOut, status_code=201)
def add_item(cart_id: str, payload: NewItem, svc: CartService = Depends(get_service)):
    return {"item_id": svc.add_item(cart_id, payload)}


@router.post("/{cart_id}/items/split", response_model=ItemIdsOut, status_code=201)
def add_split_item(cart_id: str, payload: SplitItemIn, svc: CartService = Depends(get_service)):
    item_ids = svc.add_split_item(cart_id, payload.item, payload.assignees, payload.replace_item_id)
    return {"item_ids": item_ids}


@router.patch("/{cart_id}/items/{item_id}", response_model=ItemIdOut)
def update_item(cart_id: str, item_id: str, payload: ItemPatch, svc: CartService = Depends(get_service)):
    return {"item_id": svc.update_item(cart_id, item_id, payload)}


@router.delete("/{cart_id}/items/{item_id}", status_code=204)
def remove_item(cart_id: str, item_id: str, svc: CartService = Depends(get_service)):
    svc.remove_item(cart_id, item_id)
    return Response(status_code=204)


@router.put("/{cart_id}/fulfillment", response_model=CartOut)
def upsert_fulfillment(cart_id: str, payload: FulfillmentIn, svc: CartService = Depends(get_service)):
    return svc.upsert_fulfillment(cart_id, payload.fulfillment, payload.meta)


@router.put("/{cart_id}/title", response_model=CartOut)
def update_cart_title(cart_id: str, payload: TitleIn, svc: CartService = Depends(get_service)):
    return svc.update_cart_title(cart_id, payload.title)


@router.post("/{cart_id}/submit", response_model=CartOut)
def submit_cart(cart_id: str, svc: CartService = Depends(get_service)):
    return svc.submit_cart(cart_id)


@router.delete("/{cart_id}", status_code=204)
def delete_cart(cart_id: str, svc: CartService = Depends(get_service)):
    svc.delete_cart(cart_id)
    return Response(status_code=204)


@router.post("/{cart_id}/reconcile/lifecycle")
def reconcile_lifecycle(cart_id: str, svc: CartService = Depends(get_service)):
    return {"cart_id": cart_id, "status": svc.reconcile_lifecycle(cart_id)}


@router.post("/{cart_id}/reconcile/remote")
def reconcile_remote_cart(cart_id: str, svc: CartService = Depends(get_service)):
    return {"cart_id": cart_id, "mirrored": svc.reconcile_remote_cart(cart_id)}
