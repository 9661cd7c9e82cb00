"""
SQLAlchemy model for the action_queues table: one player's repeated timed
action (gathering, crafting, training, ...) and its accumulated rewards.
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, Index, text
from datetime import datetime, timezone
from fiefdom.database import Base

ACTION_TYPES = frozenset({"cook", "craft", "smelt", "gather", "train", "agility"})

STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED, STATUS_FAILED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionQueue(Base):
    __tablename__ = "action_queues"
    __table_args__ = (
        # At most one active queue per player, enforced by the database
        Index(
            "uq_action_queues_one_active",
            "player_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)

    action_type = Column(String(20), nullable=False)
    action_params = Column(JSON, nullable=False, default=dict)  # Captured at start, never mutated

    # Status: active → completed | cancelled | failed
    status = Column(String(20), nullable=False, default=STATUS_ACTIVE, index=True)
    total = Column(Integer, nullable=False, default=0)  # 0 = run until stopped
    completed = Column(Integer, nullable=False, default=0)

    # Accumulated rewards
    total_xp = Column(Integer, nullable=False, default=0)
    total_quantity = Column(Integer, nullable=False, default=0)
    item_name = Column(String(100), nullable=True)
    last_level_up = Column(JSON, nullable=True)  # {"skill": ..., "level": ...}

    stop_reason = Column(Text, nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def is_infinite(self) -> bool:
        return self.total == 0

    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_snapshot(self) -> dict:
        """Shape shared with the client through the page-state snapshot."""
        return {
            "id": self.id,
            "action_type": self.action_type,
            "status": self.status,
            "total": self.total,
            "completed": self.completed,
            "total_xp": self.total_xp,
            "total_quantity": self.total_quantity,
            "item_name": self.item_name,
            "last_level_up": self.last_level_up,
            "stop_reason": self.stop_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
