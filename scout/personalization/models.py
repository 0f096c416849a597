from sqlalchemy import Column, DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.sql import func
from scout.core.db import Base


class InterestScoreRow(Base):
    """One (user, category) weight of an interest vector"""
    __tablename__ = "interest_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    category = Column(String(64), nullable=False)
    weight = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_interest_scores_user_category"),
    )
