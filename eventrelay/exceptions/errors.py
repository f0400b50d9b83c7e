from fastapi import status
from fastapi.responses import JSONResponse


class ApplicationException(Exception):
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_response(self, include_stack: bool = False, stack: str = None):
        content = {"success": False, "error": True, "message": self.message}
        if include_stack and stack:
            content["stack"] = stack
        return JSONResponse(status_code=self.status_code, content=content)


class ValidationException(ApplicationException):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NotFoundException(ApplicationException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictException(ApplicationException):
    """Unique-name collisions and deletes blocked by references."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class SignatureVerificationException(ApplicationException):
    def __init__(self, message: str = "Webhook signature verification failed"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class StorageException(ApplicationException):
    def __init__(self, message: str = "Failed to store event"):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)
