from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# jsonb on Postgres, plain JSON elsewhere. Python None is stored as SQL NULL.
InventoryJSON = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


class Media(Base):
    """Catalog item (tract, booklet...). Only the inventory facet is managed here."""
    __tablename__ = "media"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=True)
    is_visible = Column(Boolean, nullable=False, default=True)

    # Configured pack sizes, e.g. [1, 20, 50]
    bundle_sizes = Column(InventoryJSON, nullable=True)

    track_inventory = Column(Boolean, nullable=False, default=False)
    # {"<bundle size>": <bundles on hand>}; only written by the inventory service
    inventory_stock = Column(InventoryJSON, nullable=True)
    low_stock_threshold = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    movements = relationship("InventoryMovement", back_populates="media", cascade="all, delete-orphan")
