#import all models so SQLAlchemy registers them in Base.metadata

from cartmerge.data.models.cart import CartModel
from cartmerge.data.models.cart_line import CartLineModel

__all__ = ["CartModel", "CartLineModel"]
