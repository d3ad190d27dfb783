from fastapi import HTTPException, status


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CODES (the "error.code" field of every failure response)
# ═══════════════════════════════════════════════════════════════════════════════
class ErrorCode:
    VALIDATION_ERROR      = "VALIDATION_ERROR"
    BAD_REQUEST           = "BAD_REQUEST"
    UNAUTHORIZED          = "UNAUTHORIZED"
    NOT_FOUND             = "NOT_FOUND"
    CONFLICT              = "CONFLICT"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


# ═══════════════════════════════════════════════════════════════════════════════
# BASE
# ═══════════════════════════════════════════════════════════════════════════════
class AppException(HTTPException):
    """
    Raised by services; rendered by app.middleware.error_handler into the
    standard failure envelope.
    """
    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str,
        details: list | None = None,
        field: str | None = None,
        headers: dict | None = None,
    ):
        error = {"code": error_code, "details": details, "field": field}
        super().__init__(status_code=status_code, detail={"message": message, "error": error}, headers=headers)
        self.error_code = error_code
        self.message = message


# ═══════════════════════════════════════════════════════════════════════════════
# KINDS
# ═══════════════════════════════════════════════════════════════════════════════
class BadRequestException(AppException):
    def __init__(self, message: str = "Bad request", field: str | None = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, message, ErrorCode.BAD_REQUEST, field=field)


class UnauthorizedException(AppException):
    """
    Any credential or token rejection. Messages stay generic so the response
    does not tell the caller which factor failed.
    """
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            status.HTTP_401_UNAUTHORIZED, message, ErrorCode.UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundException(AppException):
    def __init__(self, resource: str = "Resource"):
        super().__init__(status.HTTP_404_NOT_FOUND, f"{resource} not found", ErrorCode.NOT_FOUND)


class ConflictException(AppException):
    def __init__(self, message: str = "Record already exists", field: str | None = None):
        super().__init__(status.HTTP_409_CONFLICT, message, ErrorCode.CONFLICT, field=field)
