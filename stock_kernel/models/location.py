"""
Module: stock_kernel.models.location
Responsibility: ORM persistence for stock-holding locations (factories,
    warehouses, 3PLs, Amazon FBA/AWD, ports, customs).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique.
    - Inactive locations cannot receive new ledger movements (checked by
      LedgerService, not here).
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class LocationType(str, Enum):
    """Kind of place a batch can physically sit."""

    FACTORY = "factory"
    WAREHOUSE = "warehouse"
    THIRD_PARTY_LOGISTICS = "3pl"
    AMAZON_FBA = "amazon_fba"
    AMAZON_AWD = "amazon_awd"
    PORT = "port"
    CUSTOMS = "customs"


class Location(TrackedBase):
    """A physical or channel location that holds stock positions."""

    __tablename__ = "locations"

    __table_args__ = (
        UniqueConstraint("code", name="uq_location_code"),
        Index("idx_location_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(30), nullable=False)

    name: Mapped[str] = mapped_column(String(120), nullable=False)

    location_type: Mapped[LocationType] = mapped_column(
        String(20),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Location {self.code}: {self.location_type}>"
