"""
Error taxonomy for the chunked upload engine.

Every failure a caller can observe is one of these classes. The HTTP layer
maps them onto status codes through ``status_code``; the core never imports
FastAPI.
"""


class UploadError(Exception):
    """Base class for all upload engine errors"""
    status_code: int = 500


class ValidationError(UploadError):
    """Missing or malformed input, oversize request"""
    status_code = 400


class AuthorizationError(UploadError):
    """Caller is not permitted to act on the session"""
    status_code = 403


class NotFoundError(UploadError):
    """Unknown session or principal, or a chunk missing during assembly"""
    status_code = 404


class ConflictError(UploadError):
    """Operation not valid for the session's current state"""
    status_code = 409


class IntegrityError(UploadError):
    """Assembled artifact failed size or hash verification"""
    status_code = 422


class StorageError(UploadError):
    """Underlying filesystem or store failure"""
    status_code = 500
