import base64
import binascii
from functools import wraps

from flask import current_app, g, jsonify

from .errors import DecodeFailed


def decode_username(segment):
    """Decode the standard-base64 username carried in a URL path segment.

    Raises:
        DecodeFailed: if the segment is not base64 or not UTF-8 text.
    """
    try:
        username = base64.b64decode(segment or '', validate=True).decode('utf-8')
    except (binascii.Error, ValueError) as e:
        raise DecodeFailed("Could not decode user from path.") from e

    if not username:
        raise DecodeFailed("Could not decode user from path.")
    return username


def encode_username(username):
    """Inverse of decode_username, for building ceremony URLs."""
    return base64.b64encode(username.encode('utf-8')).decode('ascii')


def _extension():
    return current_app.extensions.get('passkey_bridge')


def login_required(f):
    """Decorator to require a valid passkey session token for a view.

    Example:
        @app.route('/profile')
        @login_required
        def profile():
            return jsonify(g.user)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        bridge = _extension()

        user = bridge.get_current_user() if bridge else None
        if not user:
            return jsonify({'error': 'Authentication required'}), 401

        # Add the current user to flask.g for easy access
        g.user = user

        return f(*args, **kwargs)
    return decorated_function


def get_current_user():
    """Get the user behind the request's token.

    Returns:
        dict or None: The current user if authenticated, None otherwise
    """
    bridge = _extension()

    if not bridge:
        return None

    return bridge.get_current_user()


def is_authenticated():
    """Check if the request carries a valid token.

    Returns:
        bool: True if authenticated, False otherwise
    """
    bridge = _extension()

    if not bridge:
        return False

    return bridge.is_authenticated()
