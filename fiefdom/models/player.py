from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from fiefdom.database import Base
import secrets
import bcrypt


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Player(Base):
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)

    # API key authentication (bcrypt hash + plaintext prefix for O(1) lookup)
    api_key = Column(String, unique=True, nullable=True)
    api_key_prefix = Column(String(8), nullable=True, index=True)

    # Vitals
    energy = Column(Integer, nullable=False, default=100)
    max_energy = Column(Integer, nullable=False, default=100)
    hp = Column(Integer, nullable=False, default=10)

    # Location
    current_location_type = Column(String(32), nullable=True)  # village, town, barony, duchy, kingdom, wilderness
    current_location_id = Column(Integer, nullable=True)

    # World state that interrupts queued actions
    is_traveling = Column(Boolean, nullable=False, default=False)
    travel_arrives_at = Column(DateTime(timezone=True), nullable=True)
    is_in_infirmary = Column(Boolean, nullable=False, default=False)
    infirmary_heals_at = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    skills = relationship("PlayerSkill", back_populates="player", cascade="all, delete-orphan", lazy="selectin")

    def is_currently_traveling(self, now: datetime = None) -> bool:
        if not self.is_traveling or self.travel_arrives_at is None:
            return False
        return _as_aware(self.travel_arrives_at) > (now or _utcnow())

    def is_currently_in_infirmary(self, now: datetime = None) -> bool:
        if not self.is_in_infirmary or self.infirmary_heals_at is None:
            return False
        return _as_aware(self.infirmary_heals_at) > (now or _utcnow())

    def has_energy(self, amount: int) -> bool:
        return self.energy >= amount

    def consume_energy(self, amount: int) -> bool:
        if not self.has_energy(amount):
            return False
        self.energy -= amount
        return True

    def get_skill(self, skill_name: str):
        for skill in self.skills:
            if skill.skill_name == skill_name:
                return skill
        return None

    def get_skill_level(self, skill_name: str) -> int:
        from fiefdom.models.player_skill import PlayerSkill

        skill = self.get_skill(skill_name)
        if skill is None:
            return PlayerSkill.starting_level(skill_name)
        return skill.level

    def sidebar(self) -> dict:
        """Player vitals shown on every page."""
        return {
            "id": self.id,
            "username": self.username,
            "energy": self.energy,
            "max_energy": self.max_energy,
            "hp": self.hp,
            "location_type": self.current_location_type,
            "location_id": self.current_location_id,
            "is_traveling": self.is_currently_traveling(),
            "is_in_infirmary": self.is_currently_in_infirmary(),
        }

    @staticmethod
    def hash_api_key(api_key: str) -> str:
        """Hash an API key using bcrypt"""
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(api_key.encode('utf-8'), salt)
        return hashed.decode('utf-8')

    @staticmethod
    def get_key_prefix(api_key: str) -> str:
        """Return first 8 chars of plaintext key for O(1) lookup"""
        return api_key[:8]

    @staticmethod
    def verify_api_key(api_key: str, hashed_key: str) -> bool:
        """Verify an API key against its hash"""
        try:
            return bcrypt.checkpw(api_key.encode('utf-8'), hashed_key.encode('utf-8'))
        except ValueError:
            return False

    @classmethod
    def create_player(cls, username: str, **attrs):
        """Factory method to create a player with a hashed API key"""
        plaintext_key = secrets.token_urlsafe(32)

        player = cls(
            username=username,
            api_key=cls.hash_api_key(plaintext_key),
            api_key_prefix=cls.get_key_prefix(plaintext_key),
            **attrs,
        )

        # Attach plaintext key for one-time return (not stored)
        player._plaintext_api_key = plaintext_key
        return player
