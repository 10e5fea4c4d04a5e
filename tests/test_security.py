"""
Security tests for Flask-Passkey-Bridge.
"""

import pytest

from software_authenticator import ORIGIN, b64url_decode
from flask_passkey_bridge.utils import encode_username


@pytest.mark.security
class TestCeremonyReplay:

    def test_finish_registration_cannot_be_replayed(self, client, authenticator, username_b64):
        begin = client.post(f"/webauthn-begin-registration/{username_b64}")
        credential = authenticator.make_credential(begin.get_json(), ORIGIN)

        first = client.post(f"/webauthn-finish-registration/{username_b64}", json=credential)
        second = client.post(f"/webauthn-finish-registration/{username_b64}", json=credential)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.get_json()["code"] == "no_pending_ceremony"

    def test_successful_login_cannot_be_replayed(
        self, client, register_over_http, authenticator, test_username, username_b64
    ):
        register_over_http(test_username)
        begin = client.post(f"/webauthn-begin-login/{username_b64}")
        assertion = authenticator.get_assertion(begin.get_json(), ORIGIN)

        assert client.post(f"/webauthn-finish-login/{username_b64}", json=assertion).status_code == 200

        replay = client.post(f"/webauthn-finish-login/{username_b64}", json=assertion)
        assert replay.status_code == 400
        assert "token" not in replay.get_json()

    def test_stale_challenge_from_overwritten_begin(self, client, authenticator, username_b64):
        first = client.post(f"/webauthn-begin-registration/{username_b64}").get_json()
        client.post(f"/webauthn-begin-registration/{username_b64}")

        stale = authenticator.make_credential(first, ORIGIN)
        response = client.post(f"/webauthn-finish-registration/{username_b64}", json=stale)

        assert response.status_code == 400
        assert response.get_json()["code"] == "verification_failed"


@pytest.mark.security
class TestUserIsolation:

    def test_assertion_cannot_log_in_another_user(self, client, register_over_http, authenticator):
        register_over_http("alice")
        register_over_http("bob")

        alice = encode_username("alice")
        bob = encode_username("bob")

        alice_options = client.post(f"/webauthn-begin-login/{alice}").get_json()
        client.post(f"/webauthn-begin-login/{bob}")
        alice_assertion = authenticator.get_assertion(alice_options, ORIGIN)

        response = client.post(f"/webauthn-finish-login/{bob}", json=alice_assertion)

        assert response.status_code == 400
        assert "token" not in response.get_json()

    def test_pending_ceremonies_are_per_user(self, client, authenticator):
        alice = encode_username("alice")
        bob = encode_username("bob")

        alice_options = client.post(f"/webauthn-begin-registration/{alice}").get_json()
        client.post(f"/webauthn-begin-registration/{bob}")

        credential = authenticator.make_credential(alice_options, ORIGIN)
        response = client.post(f"/webauthn-finish-registration/{alice}", json=credential)

        assert response.status_code == 200

    def test_handles_differ_between_users(self, client):
        handles = []
        for name in ("alice", "bob"):
            options = client.post(f"/webauthn-begin-registration/{encode_username(name)}").get_json()
            handles.append(b64url_decode(options["publicKey"]["user"]["id"]))

        assert len(handles[0]) == 64
        assert handles[0] != handles[1]


@pytest.mark.security
class TestErrorResponses:

    def test_errors_do_not_leak_credential_material(self, client, register_over_http, test_username, username_b64):
        register_over_http(test_username)

        response = client.post(
            f"/webauthn-finish-login/{username_b64}",
            json={"id": "AAAA", "rawId": "AAAA", "type": "public-key", "response": {}},
        )

        body = response.get_data(as_text=True)
        assert response.status_code == 400
        assert "public_key" not in body
        assert "webauthn_id_b64" not in body


def _with_response(value):
    def mutate(payload):
        payload["response"] = value
    return mutate


def _with_raw_id(value):
    def mutate(payload):
        payload["rawId"] = value
    return mutate


def _with_user_handle(value):
    def mutate(payload):
        payload["response"]["userHandle"] = value
    return mutate


@pytest.fixture
def unpropagated_client(app):
    """Client for an app that turns unhandled exceptions into 500 responses."""
    app.config["PROPAGATE_EXCEPTIONS"] = False
    return app.test_client()


@pytest.mark.security
class TestMalformedPayloads:

    @pytest.mark.parametrize("mutate", [
        _with_response("x"),
        _with_response(["clientDataJSON"]),
        _with_response(None),
        _with_raw_id(123),
        _with_raw_id({"id": "AAAA"}),
    ], ids=["response-string", "response-list", "response-null", "raw-id-int", "raw-id-object"])
    def test_malformed_registration_is_400(self, unpropagated_client, authenticator, username_b64, mutate):
        client = unpropagated_client
        begin = client.post(f"/webauthn-begin-registration/{username_b64}")
        credential = authenticator.make_credential(begin.get_json(), ORIGIN)
        mutate(credential)

        response = client.post(f"/webauthn-finish-registration/{username_b64}", json=credential)

        assert response.status_code == 400
        assert response.get_json()["code"] == "verification_failed"

    def test_unsupported_public_key_type_is_400(self, unpropagated_client, authenticator, username_b64):
        client = unpropagated_client
        begin = client.post(f"/webauthn-begin-registration/{username_b64}")
        credential = authenticator.make_credential(begin.get_json(), ORIGIN, cose_key={1: 99, 3: -7})

        response = client.post(f"/webauthn-finish-registration/{username_b64}", json=credential)

        assert response.status_code == 400
        assert response.get_json()["code"] == "verification_failed"

    @pytest.mark.parametrize("mutate", [
        _with_response("x"),
        _with_response([]),
        _with_raw_id(123),
        _with_user_handle(42),
        _with_user_handle(["handle"]),
    ], ids=["response-string", "response-list", "raw-id-int", "user-handle-int", "user-handle-list"])
    def test_malformed_assertion_is_400(
        self, unpropagated_client, register_over_http, authenticator, test_username, username_b64, mutate
    ):
        client = unpropagated_client
        assert register_over_http(test_username).status_code == 200
        begin = client.post(f"/webauthn-begin-login/{username_b64}")
        assertion = authenticator.get_assertion(begin.get_json(), ORIGIN)
        mutate(assertion)

        response = client.post(f"/webauthn-finish-login/{username_b64}", json=assertion)

        assert response.status_code == 400
        assert response.get_json()["code"] == "verification_failed"
        assert "token" not in response.get_json()
