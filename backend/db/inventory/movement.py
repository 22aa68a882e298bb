from fastapi_users_db_sqlalchemy.generics import GUID
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class InventoryMovement(Base):
    """Append-only ledger row. Never updated or deleted once written."""
    __tablename__ = "inventory_movements"

    id = Column(Integer, primary_key=True, index=True)

    media_id = Column(
        Integer,
        ForeignKey("media.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quantity_change = Column(Integer, nullable=False)  # signed, in individual tracts
    quantity_after = Column(Integer, nullable=False)
    type = Column(Text, nullable=False)  # 'deduction' | 'addition'
    reason = Column(Text, nullable=True)

    # {"<bundle size>": <signed bundle count change>}
    denomination_deltas = Column(JSON, nullable=True)

    # Orders live outside this service; kept as a plain correlation id
    order_id = Column(Integer, nullable=True, index=True)
    changed_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)

    media = relationship("Media", back_populates="movements")

    __table_args__ = (
        Index("ix_inventory_movements_media_created", "media_id", "created_at", "id"),
    )
