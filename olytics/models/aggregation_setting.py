"""
Olytics Content Archive — Aggregation enablement model.

One row per (aggregation, account, group).  A missing row falls back
to ``settings.aggregation_default_enabled``.
"""

import uuid

from sqlalchemy import Column, String, Boolean, DateTime, func, Index

from olytics.database import Base


class AggregationSetting(Base):
    """Whether an aggregation runs for a given account/group pair."""
    __tablename__ = "aggregation_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # e.g. "content_archive"
    aggregation = Column(String(50), nullable=False)

    account_key = Column(String(100), nullable=False)
    group_key = Column(String(100), nullable=False)

    enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_aggregation_account_group", "aggregation", "account_key", "group_key", unique=True),
    )

    def to_dict(self) -> dict:
        return {
            "aggregation": self.aggregation,
            "account_key": self.account_key,
            "group_key": self.group_key,
            "enabled": bool(self.enabled),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        state = "on" if self.enabled else "off"
        return f"<AggregationSetting {self.aggregation} {self.account_key}/{self.group_key} ({state})>"
