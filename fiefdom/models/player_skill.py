from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from fiefdom.database import Base

MAX_LEVEL = 99

# Combat skills start at level 5, everything else at 1
COMBAT_SKILLS = frozenset({"attack", "strength", "defense"})


class PlayerSkill(Base):
    __tablename__ = "player_skills"
    __table_args__ = (UniqueConstraint("player_id", "skill_name", name="uq_player_skill"),)

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    skill_name = Column(String(32), nullable=False)
    level = Column(Integer, nullable=False, default=1)
    xp = Column(Integer, nullable=False, default=0)

    player = relationship("Player", back_populates="skills")

    @staticmethod
    def starting_level(skill_name: str) -> int:
        return 5 if skill_name in COMBAT_SKILLS else 1

    @staticmethod
    def xp_for_level(level: int) -> int:
        """Total XP needed to reach a level: sum of 60 * l^2 for every level below it."""
        if level < 1:
            return 0
        return sum(l * l * 60 for l in range(1, level))

    @classmethod
    def level_from_xp(cls, xp: int) -> int:
        level = 1
        while level < MAX_LEVEL and xp >= cls.xp_for_level(level + 1):
            level += 1
        return level

    @classmethod
    def new_for(cls, skill_name: str) -> "PlayerSkill":
        level = cls.starting_level(skill_name)
        return cls(skill_name=skill_name, level=level, xp=cls.xp_for_level(level))

    def add_xp(self, amount: int) -> bool:
        """Add XP and recompute the level. Returns True on level up."""
        old_level = self.level
        self.xp += amount
        self.level = self.level_from_xp(self.xp)
        return self.level > old_level

    def xp_to_next_level(self) -> int:
        if self.level >= MAX_LEVEL:
            return 0
        return self.xp_for_level(self.level + 1) - self.xp
