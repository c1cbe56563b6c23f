#cartmerge/data/models/cart_line.py
from sqlalchemy import Column, Integer, ForeignKey, Numeric, DateTime, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship

from cartmerge.data.database import Base


class CartLineModel(Base):
    __tablename__ = "cart_lines"

    id = Column(Uuid, primary_key=True)
    cart_id = Column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, nullable=False)
    variant_id = Column(Uuid, nullable=True)
    position = Column(Integer, nullable=False, default=0)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    added_at = Column(DateTime(timezone=True), nullable=False)

    cart = relationship("CartModel", back_populates="lines")

    # NULL variant_id never collides in SQL, the aggregate enforces that case
    __table_args__ = (UniqueConstraint("cart_id", "product_id", "variant_id", name="u_cart_line_key"),)
