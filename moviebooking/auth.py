import logging
from functools import wraps

from flask import current_app, g, jsonify, request, session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .extensions import db
from .models import User

logger = logging.getLogger(__name__)

ADMIN_TOKEN_SALT = 'admin-token'
ADMIN_TOKEN_COOKIE = 'adminToken'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=ADMIN_TOKEN_SALT)


def issue_admin_token(user):
    """Signed token carrying the admin's identity"""
    return _serializer().dumps({
        'id': user.id,
        'email': user.email,
        'name': user.display_name,
        'is_admin': user.is_admin,
    })


def verify_admin_token(token):
    """Return the token payload, or None if it is invalid or expired"""
    try:
        payload = _serializer().loads(token, max_age=current_app.config['ADMIN_TOKEN_MAX_AGE'])
    except SignatureExpired:
        logger.info('Admin token expired')
        return None
    except BadSignature:
        logger.info('Admin token rejected: bad signature')
        return None
    return payload if isinstance(payload, dict) else None


def _request_token():
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1].strip() or None
    return request.cookies.get(ADMIN_TOKEN_COOKIE)


def login_required(f):
    """Decorator to require login"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = session.get('user_id')
        user = db.session.get(User, user_id) if user_id else None
        if not user:
            return jsonify({'error': 'Please login to continue', 'code': 'AUTH_REQUIRED'}), 401
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require an admin bearer token (header or cookie)"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _request_token()
        if not token:
            return jsonify({'error': 'Missing authentication token', 'code': 'AUTH_REQUIRED'}), 401

        payload = verify_admin_token(token)
        if not payload:
            return jsonify({'error': 'Invalid token format', 'code': 'INVALID_TOKEN'}), 401

        if not payload.get('is_admin'):
            return jsonify({'error': 'Insufficient permissions', 'code': 'FORBIDDEN'}), 403

        user = db.session.get(User, payload.get('id'))
        if not user or not user.is_admin:
            return jsonify({'error': 'Insufficient permissions', 'code': 'FORBIDDEN'}), 403
        g.admin = user
        return f(*args, **kwargs)
    return decorated_function
