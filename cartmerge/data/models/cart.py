#cartmerge/data/models/cart.py
from sqlalchemy import Column, Integer, String, DateTime, Uuid, JSON
from sqlalchemy.orm import relationship

from cartmerge.data.database import Base


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Uuid, primary_key=True)
    # exactly one of session_id / customer_id is set
    session_id = Column(String(200), unique=True, nullable=True)
    customer_id = Column(Uuid, unique=True, nullable=True)

    currency_code = Column(String(3), nullable=False, default="USD")
    version = Column(Integer, nullable=False, default=1)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)
    notes = Column(String(2000), nullable=True)

    # last guest cart folded into this one, {line_id: quantity}
    absorbed_from = Column(Uuid, nullable=True)
    absorbed_lines = Column(JSON, nullable=True)

    lines = relationship(
        "CartLineModel",
        back_populates="cart",
        order_by="CartLineModel.position",
        passive_deletes=True,
    )
