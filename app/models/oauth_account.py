from sqlalchemy import Column, Integer, String, ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class OAuthAccount(Base):
    __tablename__ = "oauth_accounts"
    __table_args__ = (
        UniqueConstraint("provider", "providerId", name="uq_oauth_accounts_provider_provider_id"),
    )

    id         = Column(Integer, primary_key=True, index=True)
    userId     = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider   = Column(String(50), nullable=False)       # e.g. google, github
    providerId = Column(String(255), nullable=False)
    createdAt  = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    user = relationship("User", back_populates="oauth_accounts")

    def __repr__(self):
        return f"<OAuthAccount id={self.id} {self.provider}:{self.providerId} userId={self.userId}>"
