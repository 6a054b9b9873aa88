"""Authentication utilities for password hashing and admin sessions."""
from functools import wraps
from werkzeug.security import generate_password_hash, check_password_hash
from flask import session, jsonify
from marketsync.models import User, db
from marketsync.logging_config import get_logger

logger = get_logger(__name__)


def hash_password(password: str) -> str:
    """Hash a password using werkzeug's security utilities."""
    return generate_password_hash(password, method='pbkdf2:sha256')


def verify_password(password_hash: str, password: str) -> bool:
    """Verify a password against a hash."""
    return check_password_hash(password_hash, password)


def get_current_user():
    """
    Get the current logged-in user from the session.
    
    Returns:
        User object if logged in, None otherwise
    """
    from flask import has_request_context
    
    # Background jobs (scheduled backup, auto-ship CLI) have no session
    if not has_request_context():
        return None
    
    try:
        user_id = session.get('user_id')
        if not user_id:
            return None
        
        user = db.session.get(User, user_id)
        if user and user.is_active:
            return user
        return None
    except Exception as e:
        logger.error(f"Error getting current user: {e}", exc_info=True)
        return None


def can_operate(user) -> bool:
    """Admins and co-admins may run backups and shipping operations."""
    return bool(user and (user.is_admin or user.is_co_admin))


def login_required(f):
    """
    Decorator to require user login for a route.
    
    Returns 401 Unauthorized if user is not logged in.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """
    Decorator to require admin or co-admin privileges for a route.
    
    Returns 401 Unauthorized if user is not logged in.
    Returns 403 Forbidden if user is neither an admin nor a co-admin.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({'error': 'Authentication required'}), 401
        if not can_operate(user):
            logger.warning(f"Non-admin user {user.username} attempted to access admin-only route")
            return jsonify({'error': 'Admin privileges required'}), 403
        return f(*args, **kwargs)
    return decorated_function
