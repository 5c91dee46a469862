# backend/shopledger/routes/users.py
"""
Staff account routes.

The plain-text password travels only in POST/PUT bodies; responses never
carry it or its hash.
"""
from flask import Blueprint, request, current_app

from ..models import User
from ..services import user_service
from ..validation import ModelValidationPolicy, validate_payload, pagination_params, paginated_response
from ..decorators import json_errors, error_response


users_bp = Blueprint("users", __name__, url_prefix="/api/users")

USER_POLICY = ModelValidationPolicy(
    writable_fields={"username", "name", "email", "mobile_number", "role"},
    required_on_create={"username", "name", "role"},
    aliases={"mobileNumber": "mobile_number"},
)


def _split_password(payload: dict) -> tuple[dict, str | None]:
    payload = dict(payload)
    return payload, payload.pop("password", None)


@users_bp.get("")
@json_errors("Failed to fetch users")
def list_users():
    page, limit, offset = pagination_params(
        request.args,
        default_limit=current_app.config["DEFAULT_PAGE_SIZE"],
        max_limit=current_app.config["MAX_PAGE_SIZE"],
    )
    users, total = user_service.list_users(limit=limit, offset=offset)
    return paginated_response([u.to_dict() for u in users], total, page, limit)


@users_bp.get("/<int:user_id>")
@json_errors("Failed to fetch user")
def get_user(user_id: int):
    user = user_service.get_user(user_id)
    if user is None:
        return error_response("User not found", 404)
    return user.to_dict()


@users_bp.post("")
@json_errors("Server error creating user")
def create_user():
    payload, password = _split_password(request.get_json(silent=True) or {})
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
    user = user_service.create_user(patch, password)
    return {"id": user.id, "success": True, "message": "User created successfully"}, 201


@users_bp.put("/<int:user_id>")
@json_errors("Server error updating user")
def update_user(user_id: int):
    payload, password = _split_password(request.get_json(silent=True) or {})
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
    user_service.update_user(user_id, patch, password)
    return {"success": True}


@users_bp.delete("/<int:user_id>")
@json_errors("Failed to delete user")
def delete_user(user_id: int):
    user_service.delete_user(user_id)
    return {"success": True}
