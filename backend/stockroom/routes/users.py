# Overview: Flask API routes for admin user management; parses input and returns JSON responses.

# backend/stockroom/routes/users.py
"""
Admin user management.

- GET    /api/users              list (include_inactive=0 hides deactivated users)
- GET    /api/users/<id>         single user
- PATCH  /api/users/<id>         name, email, role, is_active
- DELETE /api/users/<id>         soft delete: deactivate and revoke sessions

All routes require the admin role.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..models import User, ROLE_ADMIN
from ..services import user_service
from ..services.auth_service import UserExistsError
from ..services.user_service import SelfModificationError
from ..validation import ModelValidationPolicy, validate_payload, ValidationError
from ..decorators import require_auth, require_role

USER_ADMIN_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "role", "is_active"},
    aliases={"isActive": "is_active"},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    include_inactive = request.args.get("include_inactive", "1").lower() not in {"0", "false", "no"}
    users = user_service.list_users(include_inactive=include_inactive)
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: int):
    user = user_service.get_user(user_id)
    if user is None:
        return jsonify({"message": "User not found"}), 404
    return jsonify({"user": user.to_dict()})


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    """
    Request body (all optional):
    - name: str
    - email: str
    - role: "admin" | "staff"
    - is_active: bool (false deactivates and revokes sessions)
    """
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_ADMIN_POLICY, partial=True)
        user = user_service.update_user(user_id, patch, actor_id=g.current_user.id)
    except UserExistsError as e:
        return jsonify({"message": str(e)}), 409
    except (ValidationError, SelfModificationError) as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update user %s", user_id)
        return jsonify({"message": "Internal server error"}), 500

    if user is None:
        return jsonify({"message": "User not found"}), 404

    return jsonify({"message": "User updated", "user": user.to_dict()})


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    """Soft delete. The user's sales and stock history keep pointing at the row."""
    try:
        result = user_service.deactivate_user(user_id, actor_id=g.current_user.id)
    except (ValidationError, SelfModificationError) as e:
        return jsonify({"message": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to deactivate user %s", user_id)
        return jsonify({"message": "Internal server error"}), 500

    if result is None:
        return jsonify({"message": "User not found"}), 404

    user, revoked = result
    return jsonify({
        "message": "User deactivated",
        "user": user.to_dict(),
        "sessions_revoked": revoked,
    })
