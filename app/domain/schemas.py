# app/domain/schemas.py
import datetime as dt
from decimal import Decimal
from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.domain.assignment import AssignmentRequest


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Fulfillment(BaseModel):
    """Where and when the order is handed over."""

    service: Literal["delivery", "pickup"] | None = None
    address: str | None = None
    coordinates: Coordinates | None = None
    date: dt.date | None = None
    time: dt.time | None = None


class FulfillmentMeta(BaseModel):
    provider_type: str | None = None
    provider_restaurant_id: str | None = None


class CartOptions(BaseModel):
    """Options for finding or creating a team cart."""

    title: str | None = None
    provider_type: str | None = None
    provider_restaurant_id: str | None = None
    fulfillment: Fulfillment | None = None
    meal_type: str | None = None
    created_by_member_id: str | None = None


class MenuItemRef(BaseModel):
    id: str | None = None
    name: str | None = None
    image: str | None = None
    base_price: Decimal | None = None
    provider_item_id: str | None = None


class NewItem(BaseModel):
    """Payload for adding one row to a cart."""

    menu_item: MenuItemRef | None = None
    quantity: int = 1
    unit_price: Decimal | None = None
    special_instructions: str = ""
    selected_options: dict | list | None = None
    option_catalog: list | None = None
    assignment: AssignmentRequest | None = None
    added_by_member_id: str | None = None


class ItemPatch(BaseModel):
    """Partial update of a cart row. Only fields that were set are applied."""

    quantity: int | None = None
    unit_price: Decimal | None = None
    special_instructions: str | None = None
    selected_options: dict | list | None = None
    option_catalog: list | None = None
    assignment: AssignmentRequest | None = None
    expected_version: int | None = None


class EnsureCartIn(CartOptions):
    team_id: str = Field(..., min_length=1)
    restaurant_id: str = Field(..., min_length=1)


class FindCartIn(BaseModel):
    team_id: str
    restaurant_id: str
    provider_type: str | None = None
    fulfillment: Fulfillment | None = None
    meal_type: str | None = None


class FulfillmentIn(BaseModel):
    fulfillment: Fulfillment
    meta: FulfillmentMeta | None = None


class TitleIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class SplitItemIn(BaseModel):
    item: NewItem
    assignees: List[Any] = Field(default_factory=list)
    replace_item_id: str | None = None


class CartIdOut(BaseModel):
    cart_id: str | None


class ItemIdOut(BaseModel):
    item_id: str


class ItemIdsOut(BaseModel):
    item_ids: List[str]


class CartOut(BaseModel):
    id: str
    team_id: str
    restaurant_id: str
    title: str | None = None
    status: str
    meal_type: str | None = None
    provider_type: str
    provider_restaurant_id: str | None = None
    provider_cart_id: str | None = None
    created_by_member_id: str | None = None
    created_by_member_name: str | None = None
    fulfillment: Fulfillment
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class OpenCartOut(CartOut):
    item_count: int
    subtotal: Decimal


class RestaurantOut(BaseModel):
    id: str
    name: str
    image: str | None = None


class CartItemOut(BaseModel):
    id: str
    cart_id: str
    menu_item_id: str | None = None
    name: str
    image: str | None = None
    quantity: int
    unit_price: Decimal
    special_instructions: str
    selected_options: dict
    member_id: str | None = None
    is_extra: bool
    added_by_member_id: str | None = None
    remote_line_item_id: str | None = None
    version: int


class SnapshotOut(BaseModel):
    cart: CartOut
    restaurant: RestaurantOut | None = None
    items: List[CartItemOut]
    assignment_member_ids: List[str]


class MemberProgressOut(BaseModel):
    id: str
    display_name: str
    has_ordered: bool
    order_index: int | None = None
    medal: int | None = None
    assist_count: int
    is_owner: bool

    model_config = ConfigDict(from_attributes=True)


class ProgressOut(BaseModel):
    ordered_members: List[MemberProgressOut]
    waiting_members: List[MemberProgressOut]
    extras_count: int
    unassigned_count: int
    has_recipients: bool
    assignment_members: List[str]

    model_config = ConfigDict(from_attributes=True)


class BadgeOut(BaseModel):
    cart_id: str
    count: int
    subtotal: Decimal
    name: str


class TeamMemberCreate(BaseModel):
    id: str = Field(..., min_length=1)
    team_id: str = Field(..., min_length=1)
    full_name: str | None = Field(None, max_length=100)
    email: str | None = None


class TeamMemberRead(BaseModel):
    id: str
    team_id: str
    full_name: str | None = None
    email: str | None = None

    model_config = ConfigDict(from_attributes=True)


class JoinCartIn(BaseModel):
    member_id: str


class JoinEmailIn(BaseModel):
    email: str = Field(..., min_length=3)


class SyncMembersIn(BaseModel):
    member_ids: List[str]


class CartMemberOut(BaseModel):
    member_id: str
    display_name: str
    email: str | None = None
    joined_via: str
