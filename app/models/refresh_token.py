from sqlalchemy import Column, Integer, String, Text, ForeignKey, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class RefreshToken(Base):
    """
    One refresh grant. Revocation is a tombstone (revokedAt set), never a delete;
    the row is usable iff revokedAt is NULL and expiresAt is in the future.
    """
    __tablename__ = "refresh_tokens"

    id        = Column(Integer, primary_key=True, index=True)
    userId    = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token     = Column(Text, nullable=False, unique=True)
    userAgent = Column(String(500), nullable=True)
    ipAddress = Column(String(64), nullable=True)
    expiresAt = Column(TIMESTAMP(timezone=True), nullable=False, index=True)
    revokedAt = Column(TIMESTAMP(timezone=True), nullable=True)
    createdAt = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken id={self.id} userId={self.userId} revokedAt={self.revokedAt}>"
