# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockroom/routes/auth.py
"""
Authentication API routes

- POST /api/auth/register  self-registration, always as "staff"
- POST /api/auth/login     username or email + password -> {user, token}
- POST /api/auth/logout    revoke the presented token
- GET  /api/auth/me        current user
- PUT  /api/auth/me        profile update (username, email, name, password)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models import User
from ..services import auth_service
from ..services import session_service
from ..services import user_service
from ..services.auth_service import PasswordValidationError, UserExistsError
from ..validation import ModelValidationPolicy, validate_payload, ValidationError
from ..decorators import require_auth

PROFILE_POLICY = ModelValidationPolicy(writable_fields={"username", "email", "name"})

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Create a staff account and sign it in.

    A "role" in the body is ignored; admins are created with the CLI
    (flask users create --role admin).
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    email = data.get("email")
    password = data.get("password")

    if not all([username, email, password]):
        return jsonify({"message": "Missing required fields"}), 400

    try:
        user = auth_service.create_user(
            username=username,
            email=email,
            password=password,
            name=data.get("name"),
        )
        _, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except PasswordValidationError as e:
        return jsonify({"message": str(e)}), 400
    except UserExistsError as e:
        return jsonify({"message": str(e)}), 409
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Registration failed")
        return jsonify({"message": "Internal server error"}), 500

    return jsonify({
        "message": "User registered successfully",
        "user": user.to_dict(),
        "token": token,
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("username") or data.get("email") or data.get("identifier")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"message": "Missing credentials"}), 400

        user = auth_service.authenticate(identifier, password)
        if not user:
            return jsonify({"message": "Invalid credentials"}), 401

        _, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "message": "Login successful",
            "user": user.to_dict(),
            "token": token,
        }), 200
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"message": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.put("/me")
@require_auth
def update_me_route():
    """
    Update the current user's profile.

    Body (all optional): username, email, name, password. Changing the
    password also needs current_password. Role and active status are
    admin-only (see /api/users).
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"message": "Invalid JSON payload"}), 400

    data = dict(data)
    password = data.pop("password", None)
    current_password = data.pop("current_password", None)
    current_password_alias = data.pop("currentPassword", None)
    current_password = current_password or current_password_alias

    try:
        patch = validate_payload(model=User, payload=data, policy=PROFILE_POLICY, partial=True)
        user = user_service.update_profile(
            g.current_user,
            patch,
            password=password,
            current_password=current_password,
        )
    except PasswordValidationError as e:
        return jsonify({"message": str(e)}), 400
    except UserExistsError as e:
        return jsonify({"message": str(e)}), 409
    except ValidationError as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Profile update failed for user %s", g.current_user.id)
        return jsonify({"message": "Internal server error"}), 500

    return jsonify({"message": "Profile updated", "user": user.to_dict()}), 200
