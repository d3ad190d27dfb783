from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP
from sqlalchemy.orm import relationship
from app.database import Base


class VerificationToken(Base):
    __tablename__ = "verification_tokens"

    id        = Column(Integer, primary_key=True, index=True)
    userId    = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token     = Column(String(128), nullable=False, unique=True)
    expiresAt = Column(TIMESTAMP(timezone=True), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="verification_tokens")

    def __repr__(self):
        return f"<VerificationToken id={self.id} userId={self.userId}>"
