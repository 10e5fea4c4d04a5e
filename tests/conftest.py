"""
Pytest fixtures for Flask-Passkey-Bridge tests.

Ceremony components are built standalone for unit tests; the ``app`` fixture
wires the same components through the Flask extension for endpoint tests.
"""

import sys
from pathlib import Path

import pytest
from flask import Flask, g, jsonify

# Ensure project root is importable when running tests from /tests
PROJECT_ROOT = str(Path(__file__).resolve().parent.parent)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from flask_passkey_bridge.auth import PasskeyBridge
from flask_passkey_bridge.authentication import AuthenticationFlow
from flask_passkey_bridge.ceremony import RelyingPartyConfig, WebAuthnCeremony
from flask_passkey_bridge.identity import IdentityResolver
from flask_passkey_bridge.registration import RegistrationFlow
from flask_passkey_bridge.sessions import CeremonySessionStore
from flask_passkey_bridge.storage import InMemoryStorageAdapter
from flask_passkey_bridge.tokens import TokenIssuer
from flask_passkey_bridge.utils import encode_username, login_required

from software_authenticator import ORIGIN, SoftwareAuthenticator


@pytest.fixture
def base_config():
    return {
        "SECRET_KEY": "test-secret-key",
        "TESTING": True,

        # Relying party
        "PASSKEY_RP_ID": "localhost",
        "PASSKEY_RP_NAME": "Test App",
        "PASSKEY_ORIGINS": [ORIGIN, "http://localhost:5173"],
        "PASSKEY_USER_VERIFICATION": "preferred",
        "PASSKEY_CEREMONY_TTL": 120,
        "PASSKEY_TOKEN_DURATION": 3600,
    }


# ---- Standalone components ----

@pytest.fixture
def storage():
    return InMemoryStorageAdapter()


@pytest.fixture
def rp_config(base_config):
    return RelyingPartyConfig.from_mapping(base_config)


@pytest.fixture
def ceremony(rp_config):
    return WebAuthnCeremony(rp_config)


@pytest.fixture
def sessions():
    return CeremonySessionStore(ttl_seconds=120)


@pytest.fixture
def resolver(storage):
    return IdentityResolver(storage)


@pytest.fixture
def issuer():
    return TokenIssuer("test-token-secret", duration_seconds=3600)


@pytest.fixture
def registration_flow(resolver, sessions, ceremony, storage):
    return RegistrationFlow(resolver, sessions, ceremony, storage)


@pytest.fixture
def authentication_flow(resolver, sessions, ceremony, storage, issuer):
    return AuthenticationFlow(resolver, sessions, ceremony, storage, issuer)


@pytest.fixture
def authenticator():
    return SoftwareAuthenticator()


@pytest.fixture
def test_username():
    return "alice@example.com"


@pytest.fixture
def enrolled_user(registration_flow, authenticator, test_username):
    """A user who completed registration through the flow objects."""
    options = registration_flow.begin(test_username)
    credential = authenticator.make_credential(options, ORIGIN)
    registration_flow.finish(test_username, credential)
    return test_username


# ---- Flask app ----

@pytest.fixture
def app(base_config):
    """Flask app with PasskeyBridge + in-memory storage and a protected route."""
    app = Flask(__name__)
    app.config.update(base_config)

    bridge = PasskeyBridge(app, storage_adapter=InMemoryStorageAdapter())

    @app.route("/protected")
    @bridge.login_required
    def protected():
        return jsonify(bridge.get_current_user())

    @app.route("/profile")
    @login_required
    def profile():
        return jsonify(g.user)

    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def bridge(app):
    return app.extensions["passkey_bridge"]


@pytest.fixture
def username_b64(test_username):
    return encode_username(test_username)


@pytest.fixture
def register_over_http(client, authenticator):
    """Run begin + finish registration through the HTTP endpoints."""
    def register(username):
        segment = encode_username(username)
        begin = client.post(f"/webauthn-begin-registration/{segment}")
        assert begin.status_code == 200
        credential = authenticator.make_credential(begin.get_json(), ORIGIN)
        return client.post(f"/webauthn-finish-registration/{segment}", json=credential)
    return register


@pytest.fixture
def login_over_http(client, authenticator):
    """Run begin + finish login through the HTTP endpoints."""
    def login(username):
        segment = encode_username(username)
        begin = client.post(f"/webauthn-begin-login/{segment}")
        assert begin.status_code == 200
        assertion = authenticator.get_assertion(begin.get_json(), ORIGIN)
        return client.post(f"/webauthn-finish-login/{segment}", json=assertion)
    return login
