from sqlalchemy import Column, Integer, Text, ForeignKey, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class BlacklistedAccessToken(Base):
    __tablename__ = "blacklisted_access_tokens"

    id        = Column(Integer, primary_key=True, index=True)
    userId    = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token     = Column(Text, nullable=False, unique=True)
    expiresAt = Column(TIMESTAMP(timezone=True), nullable=False, index=True)  # copied from the token's exp claim
    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="blacklisted_tokens")

    def __repr__(self):
        return f"<BlacklistedAccessToken id={self.id} userId={self.userId}>"
