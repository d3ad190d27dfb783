from dataclasses import dataclass

from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog


@dataclass(frozen=True)
class RequestContext:
    """Where a request came from. Advisory only, never used for authorization."""
    user_agent: str | None = None
    ip_address: str | None = None


def log_action(
    db: Session,
    user_id: int | None,
    action: str,
    description: str | None = None,
    context: RequestContext | None = None,
) -> None:
    """
    Stage an audit row for a session event (REGISTER, LOGIN, LOGIN_FAILED,
    REFRESH, REFRESH_REUSE, LOGOUT, OAUTH_LINK ...). ``user_id`` is None when
    the account is unknown, e.g. a failed login for an unregistered email.
    Nothing is committed here; the event lands with the caller's transaction.
    """
    context = context or RequestContext()
    entry = AuditLog(
        userId=user_id,
        action=action,
        description=description,
        userAgent=context.user_agent[:500] if context.user_agent else None,
        ipAddress=context.ip_address,
    )
    db.add(entry)
