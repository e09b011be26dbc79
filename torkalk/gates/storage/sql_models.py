from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class CustomerRow(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True)

    name: Mapped[str] = mapped_column(String)
    company: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    gates: Mapped[List["GateRow"]] = relationship(
        back_populates="customer", cascade="all, delete-orphan"
    )


class GateRow(Base):
    __tablename__ = "gates"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    customer_id: Mapped[str] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), index=True
    )
    order_id: Mapped[Optional[str]] = mapped_column(String, index=True, nullable=True)

    name: Mapped[str] = mapped_column(String, default="")
    gate_type: Mapped[str] = mapped_column(String, default="")

    # Abmessungen in cm, 4 Nachkommastellen wie STORED_PLACES
    breite: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("0"))
    hoehe: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("0"))
    glashoehe: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("0"))

    # Flaechen in m²
    gesamtflaeche: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("0"))
    glasflaeche: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("0"))
    torflaeche: Mapped[Decimal] = mapped_column(Numeric(12, 4), default=Decimal("0"))

    # JSON als Text
    selected_products: Mapped[str] = mapped_column(Text, default="[]")
    product_quantities: Mapped[str] = mapped_column(Text, default="{}")
    custom_prices: Mapped[str] = mapped_column(Text, default="{}")

    aufschlag: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    aufschlag_betrag: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    exklusive_mwst: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    inkl_mwst: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    quantity: Mapped[int] = mapped_column(Integer, default=1)
    notizen: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    customer: Mapped[CustomerRow] = relationship(back_populates="gates")
