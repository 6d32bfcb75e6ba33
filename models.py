from typing import Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import BigInteger, Integer, String, Text, ForeignKey, UniqueConstraint
from database import Base

# largest value an INTEGER column holds
MAX_INT = 2**63 - 1

class LedgerState(Base):
    __tablename__ = "ledger_state"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64))
    symbol: Mapped[str] = mapped_column(String(16))
    admin: Mapped[str] = mapped_column(String(255))
    next_token_id: Mapped[int] = mapped_column(Integer, default=1)
    mint_fee: Mapped[int] = mapped_column(BigInteger)
    admin_balance: Mapped[int] = mapped_column(BigInteger, default=0)

class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identity: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    added_at: Mapped[str] = mapped_column(String(32))

class Product(Base):
    __tablename__ = "products"
    # token id, allocated by the ledger
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255))
    origin: Mapped[str] = mapped_column(String(255))
    batch_number: Mapped[str] = mapped_column(String(64))
    quantity_kg: Mapped[int] = mapped_column(Integer)
    metadata_uri: Mapped[str] = mapped_column(Text)
    current_status: Mapped[str] = mapped_column(Text)
    supplier: Mapped[str] = mapped_column(String(255), index=True)
    owner: Mapped[str] = mapped_column(String(255), index=True)
    approved: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[str] = mapped_column(String(32))
    events: Mapped[list["Event"]] = relationship("Event", back_populates="product", order_by="Event.id")

class OperatorApproval(Base):
    __tablename__ = "operator_approvals"
    __table_args__ = (UniqueConstraint("holder", "operator"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    holder: Mapped[str] = mapped_column(String(255), index=True)
    operator: Mapped[str] = mapped_column(String(255))

class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    token_id: Mapped[int] = mapped_column(Integer, ForeignKey("products.id"), index=True)
    type: Mapped[str] = mapped_column(String(50))
    payload: Mapped[str] = mapped_column(Text)
    timestamp: Mapped[str] = mapped_column(String(32))
    prev_hash: Mapped[str] = mapped_column(String(128))
    hash: Mapped[str] = mapped_column(String(128))
    product: Mapped[Product] = relationship("Product", back_populates="events")
