from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint
from fiefdom.database import Base


class InventoryItem(Base):
    """One stack of an item in a player's inventory."""
    __tablename__ = "inventory_items"
    __table_args__ = (UniqueConstraint("player_id", "item_name", name="uq_inventory_stack"),)

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    item_name = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)

    def to_dict(self):
        return {"name": self.item_name, "quantity": self.quantity}
