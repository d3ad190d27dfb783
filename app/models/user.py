from sqlalchemy import Column, Integer, String, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class User(Base):
    __tablename__ = "users"

    id              = Column(Integer, primary_key=True, index=True)
    email           = Column(String(255), unique=True, nullable=False, index=True)
    password        = Column(String(255), nullable=True)        # NULL = OAuth-only account
    firstName       = Column(String(100), nullable=False)
    lastName        = Column(String(100), nullable=False)
    disabledAt      = Column(TIMESTAMP(timezone=True), nullable=True)
    emailVerifiedAt = Column(TIMESTAMP(timezone=True), nullable=True)
    createdAt       = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)
    updatedAt       = Column(TIMESTAMP(timezone=True), server_default=func.now(),
                             onupdate=func.now(), nullable=False)

    # ─── Relationships ─────────────────────────────────────────────────────────
    refresh_tokens       = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan",
                                        passive_deletes=True)
    blacklisted_tokens   = relationship("BlacklistedAccessToken", back_populates="user",
                                        cascade="all, delete-orphan", passive_deletes=True)
    oauth_accounts       = relationship("OAuthAccount", back_populates="user", cascade="all, delete-orphan",
                                        passive_deletes=True)
    password_reset_tokens = relationship("PasswordResetToken", back_populates="user",
                                         cascade="all, delete-orphan", passive_deletes=True)
    verification_tokens  = relationship("VerificationToken", back_populates="user",
                                        cascade="all, delete-orphan", passive_deletes=True)
    audit_logs           = relationship("AuditLog", back_populates="user", passive_deletes=True)

    @property
    def is_disabled(self) -> bool:
        return self.disabledAt is not None

    def __repr__(self):
        return f"<User id={self.id} email={self.email}>"
