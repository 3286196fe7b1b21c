# bikeshop_api/services/errors.py


class ServiceError(Exception):
    """Base exception for service layer failures."""

    code = 'SERVICE_ERROR'
    status_code = 500

    def __init__(self, message, *, field=None, cause=None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.cause = cause

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        if self.field:
            payload['field'] = self.field
        return payload


class ValidationError(ServiceError):
    """Malformed input: bad amounts, empty line items, dates in the wrong place."""

    code = 'VALIDATION_ERROR'
    status_code = 400


class NotFoundError(ServiceError):
    code = 'NOT_FOUND'
    status_code = 404


class ConflictError(ServiceError):
    """Raised when an operation is not allowed in the document's current state."""

    code = 'CONFLICT'
    status_code = 409


class ForbiddenError(ServiceError):
    code = 'FORBIDDEN'
    status_code = 403
