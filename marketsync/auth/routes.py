"""Authentication routes for admin login and logout."""
from flask import Blueprint, request, jsonify, session
from marketsync.models import User, db
from marketsync.auth.utils import verify_password, get_current_user, can_operate
from marketsync.logging_config import get_logger
from datetime import datetime

logger = get_logger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _user_payload(user):
    return {
        'id': user.id,
        'username': user.username,
        'role': user.role,
        'is_admin': user.is_admin,
        'is_co_admin': user.is_co_admin,
        'can_operate': can_operate(user),
    }


@auth_bp.route('/login', methods=['POST'])
def login():
    """Authenticate a user and create a session."""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'No JSON data provided'}), 400
        
        username = data.get('username')
        password = data.get('password')
        
        if not username or not password:
            return jsonify({'error': 'Username and password are required'}), 400
        
        user = User.query.filter_by(username=username).first()
        
        if not user or not verify_password(user.password_hash, password):
            logger.warning(f"Failed login attempt for user: {username}")
            return jsonify({'error': 'Invalid username or password'}), 401
        
        if not user.is_active:
            logger.warning(f"Login attempt for inactive user: {username}")
            return jsonify({'error': 'Account is inactive'}), 403
        
        user.last_login = datetime.utcnow()
        db.session.commit()
        
        session['user_id'] = user.id
        session['username'] = user.username
        session.permanent = True
        
        logger.info(f"User {username} logged in successfully")
        
        return jsonify({'status': 'success', 'user': _user_payload(user)}), 200
        
    except Exception as e:
        logger.error(f"Error during login: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({'error': 'An error occurred during login'}), 500


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Clear the session."""
    username = session.get('username', 'Unknown')
    session.clear()
    logger.info(f"User {username} logged out")
    return jsonify({'status': 'success', 'message': 'Logged out successfully'}), 200


@auth_bp.route('/me', methods=['GET'])
def get_current_user_info():
    """Get current logged-in user information."""
    user = get_current_user()
    if not user:
        return jsonify({'error': 'Not authenticated'}), 401
    
    return jsonify({
        **_user_payload(user),
        'last_login': user.last_login.isoformat() if user.last_login else None
    }), 200
