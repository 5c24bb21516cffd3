import logging
from functools import wraps

from flask import jsonify

from .extensions import db

logger = logging.getLogger(__name__)


class BookingAppException(Exception):
    """Base exception for the booking application"""
    status_code = 400
    code = 'BAD_REQUEST'

    def __init__(self, message, code=None, status_code=None):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class ValidationError(BookingAppException):
    """Raised when a request is malformed or misses required fields"""
    status_code = 400
    code = 'VALIDATION_ERROR'


class AuthenticationError(BookingAppException):
    """Raised when the caller is not authenticated"""
    status_code = 401
    code = 'AUTH_REQUIRED'


class PermissionDenied(BookingAppException):
    """Raised when the caller lacks the required role"""
    status_code = 403
    code = 'FORBIDDEN'


class NotFoundError(BookingAppException):
    """Raised when a resource is not found"""
    status_code = 404
    code = 'NOT_FOUND'


class BusinessLogicError(BookingAppException):
    """Raised when business rules reject an otherwise valid request"""
    status_code = 409
    code = 'CONFLICT'


class DatabaseError(BookingAppException):
    """Raised when a database write fails"""
    status_code = 500
    code = 'DB_ERROR'


def handle_exceptions(f):
    """Decorator for error handling"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except BookingAppException as e:
            if e.status_code >= 500:
                logger.error('%s failed: %s', f.__name__, e.message)
            return jsonify(e.to_dict()), e.status_code
        except Exception as e:
            logger.exception('Unhandled error in %s', f.__name__)
            db.session.rollback()
            return jsonify({
                'error': 'Failed to process request',
                'code': 'PROCESSING_ERROR',
                'details': str(e),
            }), 500
    return decorated_function
