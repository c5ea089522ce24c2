# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockledger/routes/auth.py
"""
Authentication API routes.

Login exchanges username/password for an opaque bearer token; every other
route expects it in `Authorization: Bearer <token>`.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import bearer_token, require_auth
from ..errors import UnauthenticatedError, ValidationError
from ..services import auth_service
from ..services import session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not username or not password:
        raise ValidationError("username and password required", field="username")

    user = auth_service.authenticate(username, password)
    if not user:
        raise UnauthenticatedError("Invalid credentials")

    session, token = session_service.create_session(user.id)

    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the presenting session token."""
    session_service.revoke_session(bearer_token(), reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "session": g.session_context.session.to_dict(),
    }), 200
