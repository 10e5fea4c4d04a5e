from functools import wraps

from flask import Blueprint, current_app, g, jsonify, request

from .authentication import AuthenticationFlow
from .ceremony import RelyingPartyConfig, WebAuthnCeremony
from .errors import DecodeFailed, PasskeyError
from .identity import IdentityResolver, UserIdentity
from .registration import RegistrationFlow
from .sessions import CeremonySessionStore
from .storage import InMemoryStorageAdapter
from .tokens import TokenIssuer
from .utils import decode_username


class PasskeyBridge:
    """Passwordless WebAuthn registration and login for Flask."""

    def __init__(self, app=None, storage_adapter=None):
        self.app = app
        self.blueprint = Blueprint('passkey', __name__)

        self.storage = storage_adapter or InMemoryStorageAdapter()
        self.resolver = IdentityResolver(self.storage)

        # Built from app.config in init_app, immutable afterwards
        self.rp_config = None
        self.ceremony = None
        self.sessions = None
        self.issuer = None
        self.registration = None
        self.authentication = None

        self._register_routes()

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize the extension with Flask app."""
        self.app = app
        app.config.setdefault('PASSKEY_RP_ID', 'localhost')
        app.config.setdefault('PASSKEY_RP_NAME', 'Flask Passkey Bridge')
        app.config.setdefault('PASSKEY_ORIGINS', ['http://localhost:5000'])
        app.config.setdefault('PASSKEY_TIMEOUT_MS', 60000)
        app.config.setdefault('PASSKEY_USER_VERIFICATION', 'preferred')
        app.config.setdefault('PASSKEY_CEREMONY_TTL', 300)
        app.config.setdefault('PASSKEY_TOKEN_SECRET', None)
        app.config.setdefault('PASSKEY_TOKEN_DURATION', 14 * 24 * 60 * 60)
        app.config.setdefault('PASSKEY_URL_PREFIX', None)

        self.rp_config = RelyingPartyConfig.from_mapping(app.config)
        self.ceremony = WebAuthnCeremony(self.rp_config)
        self.sessions = CeremonySessionStore(ttl_seconds=app.config['PASSKEY_CEREMONY_TTL'])
        self.issuer = TokenIssuer(
            app.config.get('PASSKEY_TOKEN_SECRET') or app.config.get('SECRET_KEY'),
            duration_seconds=app.config['PASSKEY_TOKEN_DURATION'],
        )
        self.registration = RegistrationFlow(
            self.resolver, self.sessions, self.ceremony, self.storage
        )
        self.authentication = AuthenticationFlow(
            self.resolver, self.sessions, self.ceremony, self.storage, self.issuer
        )

        app.extensions['passkey_bridge'] = self

        if hasattr(self.storage, 'init_app'):
            self.storage.init_app(app)

        app.register_blueprint(self.blueprint, url_prefix=app.config['PASSKEY_URL_PREFIX'])

    # ==================== Token Sessions ====================

    @staticmethod
    def _request_token():
        header = request.headers.get('Authorization', '')
        if header.lower().startswith('bearer '):
            return header[7:].strip()
        return header.strip() or None

    def is_authenticated(self):
        """Check if the request carries a valid, unexpired token for an existing user."""
        return self.get_current_user() is not None

    def get_current_user(self):
        """Get the user the request's token was issued to."""
        if 'passkey_user' in g:
            return g.passkey_user

        claims = self.issuer.verify(self._request_token())
        if not claims:
            return None

        record = self.storage.get_user_by_id(claims.get('id'))
        user = UserIdentity.from_record(record).to_public_dict() if record else None
        g.passkey_user = user
        return user

    def login_required(self, f):
        """Decorator to require a valid token for a view."""
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not self.get_current_user():
                return jsonify({'error': 'Authentication required'}), 401
            return f(*args, **kwargs)
        return decorated_function

    @staticmethod
    def _credential_from_request():
        credential = request.get_json(silent=True)
        if not isinstance(credential, dict):
            raise DecodeFailed("Request body must be a JSON credential object.")
        return credential

    def _register_routes(self):
        """Register ceremony routes on the blueprint."""

        @self.blueprint.errorhandler(PasskeyError)
        def handle_passkey_error(error):
            if error.kind.is_client_error:
                current_app.logger.warning(
                    f"Passkey request rejected ({error.kind.value}): {error.message}"
                )
            else:
                current_app.logger.error(
                    f"Passkey request failed ({error.kind.value}): {error.message}"
                )
            return jsonify(error.to_dict()), error.status_code

        # ==================== Registration Routes ====================
        #   1. begin creates a challenge for the authenticator to sign
        #   2. finish validates the new credential and stores it on the user

        @self.blueprint.route('/webauthn-begin-registration/<path:username_b64>', methods=['POST'])
        def begin_registration(username_b64):
            username = decode_username(username_b64)
            return jsonify(self.registration.begin(username))

        @self.blueprint.route('/webauthn-finish-registration/<path:username_b64>', methods=['POST'])
        def finish_registration(username_b64):
            username = decode_username(username_b64)
            credential = self._credential_from_request()
            result = self.registration.finish(username, credential)
            current_app.logger.info("Passkey registered")
            return jsonify(result)

        # ==================== Login Routes ====================
        #   1. begin creates a challenge for the stored credential
        #   2. finish validates the signature and responds with a token

        @self.blueprint.route('/webauthn-begin-login/<path:username_b64>', methods=['POST'])
        def begin_login(username_b64):
            username = decode_username(username_b64)
            return jsonify(self.authentication.begin(username))

        @self.blueprint.route('/webauthn-finish-login/<path:username_b64>', methods=['POST'])
        def finish_login(username_b64):
            username = decode_username(username_b64)
            assertion = self._credential_from_request()
            result = self.authentication.finish(username, assertion)
            current_app.logger.info(f"Passkey login for user {result['user']['id']}")
            return jsonify(result)
