"""
BudgetBuddy - Authentication

Bearer-token authentication for the REST API:
- PyJWT access tokens issued at login
- a Flask-Login request loader that turns the Authorization header into
  current_user, whose id is the single canonical owner id every data
  operation is scoped to
"""

import datetime
import logging

import jwt as pyjwt
from flask import current_app, g, jsonify
from flask_login import LoginManager, UserMixin

from errors import AuthenticationFailure

logger = logging.getLogger(__name__)

OWNER_CLAIMS = ('user_id', 'id', 'sub')

login_manager = LoginManager()


# =============================================================================
# JWT
# =============================================================================

def create_token(user, secret, algorithm='HS256', expires_hours=1):
    """Sign an access token for user ({id, email, ...})."""
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "user_id": user['id'],
        "sub": str(user['id']),
        "email": user.get('email'),
        "iat": now,
        "exp": now + datetime.timedelta(hours=expires_hours),
    }
    return pyjwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token, secret, algorithm='HS256'):
    try:
        return pyjwt.decode(token, secret, algorithms=[algorithm])
    except pyjwt.ExpiredSignatureError:
        raise AuthenticationFailure("Token expired")
    except pyjwt.InvalidTokenError:
        raise AuthenticationFailure("Invalid token")


def normalize_owner_claims(claims):
    """
    Resolve the owner id from token claims.

    Tokens from different issuers name the identity claim differently;
    the first present of user_id, id and sub wins and is coerced to int.
    """
    for claim in OWNER_CLAIMS:
        value = claims.get(claim)
        if value is None or value == '':
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            raise AuthenticationFailure("Invalid token")
    raise AuthenticationFailure("Invalid token")


# =============================================================================
# FLASK-LOGIN
# =============================================================================

class User(UserMixin):
    def __init__(self, id, email=None):
        self.id = id
        self.email = email


@login_manager.request_loader
def load_user_from_request(request):
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        g.auth_error = "Access token required"
        return None
    try:
        claims = decode_token(
            header[7:].strip(),
            current_app.config['JWT_SECRET'],
            current_app.config['JWT_ALGORITHM'],
        )
        return User(normalize_owner_claims(claims), claims.get('email'))
    except AuthenticationFailure as e:
        logger.info("Rejected bearer token: %s", e.message)
        g.auth_error = e.message
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(success=False, error=g.get('auth_error', "Authorization required")), 401
