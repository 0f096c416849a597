from sqlalchemy import Column, Float, ForeignKey, Index, Integer, String, Text, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from scout.core.db import Base
from scout.places.schemas.destination import Destination


class DestinationRow(Base):
    __tablename__ = "destinations"

    id = Column(String(64), primary_key=True)
    name = Column(Text, nullable=False, index=True)
    image_url = Column(Text, nullable=False, default="")
    rating = Column(Float, CheckConstraint("rating >= 0 AND rating <= 5"), nullable=False, default=0.0)
    location = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False, default=0.0)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    categories = relationship(
        "DestinationCategoryRow",
        back_populates="destination",
        cascade="all, delete-orphan",
        order_by="DestinationCategoryRow.position",
        lazy="selectin",
    )

    def to_domain(self) -> Destination:
        return Destination(
            id=self.id,
            name=self.name,
            image_url=self.image_url or "",
            rating=self.rating or 0.0,
            location=self.location or "",
            categories=tuple(c.category for c in self.categories),
            price=self.price or 0.0,
            description=self.description,
        )


class DestinationCategoryRow(Base):
    """Category index for category-filtered catalog reads"""
    __tablename__ = "destination_categories"

    destination_id = Column(String(64), ForeignKey("destinations.id", ondelete="CASCADE"), primary_key=True)
    category = Column(String(64), primary_key=True)
    position = Column(Integer, nullable=False, default=0)

    destination = relationship("DestinationRow", back_populates="categories")

    __table_args__ = (
        Index("ix_destination_categories_category", "category"),
    )
