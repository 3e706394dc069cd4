"""
Custom exceptions for the grading pipeline API
"""
from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for all API errors"""
    
    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str = None,
        headers: dict = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundException(BaseAPIException):
    """Resource not found"""
    
    def __init__(self, resource: str, identifier: str = None):
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND"
        )


class BadRequestException(BaseAPIException):
    """Bad request - invalid input"""
    
    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
            error_code="BAD_REQUEST"
        )


class PreconditionException(BaseAPIException):
    """Operation not allowed in the schedule's current state"""
    
    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=message,
            error_code="PRECONDITION_FAILED"
        )


class ConflictException(BaseAPIException):
    """Stored document changed since it was read"""
    
    def __init__(self, resource: str, identifier: str, expected: int, actual: int):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"{resource} '{identifier}' was modified concurrently "
                f"(expected version {expected}, found {actual})"
            ),
            error_code="VERSION_CONFLICT"
        )


class FileProcessingException(BaseAPIException):
    """Error processing file"""
    
    def __init__(self, filename: str, reason: str):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Cannot process file '{filename}': {reason}",
            error_code="FILE_PROCESSING_ERROR"
        )


class DatabaseException(BaseAPIException):
    """Persistence error"""
    
    def __init__(self, operation: str, reason: str = None):
        detail = f"Storage error during {operation}"
        if reason:
            detail += f": {reason}"
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="DATABASE_ERROR"
        )


class RecognitionException(BaseAPIException):
    """Recognition model error"""
    
    def __init__(self, model: str, reason: str = None):
        detail = f"Recognition model '{model}' failed"
        if reason:
            detail += f": {reason}"
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail,
            error_code="RECOGNITION_ERROR"
        )
