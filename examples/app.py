from datetime import datetime, timezone
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

from flask_passkey_bridge import PasskeyBridge, SQLAlchemyStorageAdapter, get_current_user, login_required

app = Flask(__name__)
app.config["SECRET_KEY"] = "dev-secret-change-in-production"
app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///passkeys.db"
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

app.config["PASSKEY_RP_ID"] = "localhost"
app.config["PASSKEY_RP_NAME"] = "Passkey Bridge Demo"
app.config["PASSKEY_ORIGINS"] = ["http://localhost:5000", "http://localhost:5173"]

db = SQLAlchemy(app)


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255), default="")
    password_hash = db.Column(db.String(255))
    webauthn_id_b64 = db.Column(db.Text, default="")
    webauthn_credentials = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))


with app.app_context():
    db.create_all()
    storage = SQLAlchemyStorageAdapter(User, db.session)
    bridge = PasskeyBridge(app, storage_adapter=storage)


# Routes
# The ceremony endpoints are registered by PasskeyBridge:
#   POST /webauthn-begin-registration/<usernameB64>
#   POST /webauthn-finish-registration/<usernameB64>
#   POST /webauthn-begin-login/<usernameB64>
#   POST /webauthn-finish-login/<usernameB64>

@app.route("/me")
@login_required
def me():
    return jsonify(get_current_user())


@app.before_request
def sweep_ceremonies():
    # Drop ceremonies abandoned past their TTL
    bridge.sessions.cleanup_expired()


if __name__ == "__main__":
    app.run(debug=True)
