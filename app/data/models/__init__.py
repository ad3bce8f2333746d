#import all models so SQLAlchemy registers them in Base.metadata

from app.data.models.restaurant import RestaurantModel
from app.data.models.team_member import TeamMemberModel
from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.data.models.cart_member import CartMemberModel

__all__ = ["RestaurantModel", "TeamMemberModel", "CartModel", "CartItemModel", "CartMemberModel"]
