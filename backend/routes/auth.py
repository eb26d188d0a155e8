from flask import Blueprint, request, jsonify
from functools import wraps
from routes.payload import json_body
from db import get_db
from schema import User

auth_bp = Blueprint("auth", __name__)

TOKEN_PREFIX = "mock-jwt-"


def role_of(user: User) -> str:
    return "admin" if user.is_admin else "customer"


def issue_token(user: User) -> str:
    return f"{TOKEN_PREFIX}{role_of(user)}-{user.username}"


@auth_bp.route("/auth/login", methods=["POST"])
def login():
    """
    Authenticates a registered storefront user by username.

    Returns:
        A tuple containing the JSON response and HTTP status code.
        Success returns user metadata and a synthetic bearer token.
    """
    data = json_body()
    username = data.get("username", "")

    if not username:
        return jsonify({"message": "Username is required"}), 400

    db = next(get_db())
    try:
        user = db.query(User).filter_by(username=username).first()
        if not user:
            return jsonify({"message": "User not found"}), 401
        return jsonify({
            "userId": user.user_id,
            "username": user.username,
            "role": role_of(user),
            "isAdmin": user.is_admin,
            "token": issue_token(user),
        }), 200
    finally:
        db.close()


def _user_from_token(db, auth_header):
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1]
    if not token.startswith(TOKEN_PREFIX):
        return None
    role, _, username = token[len(TOKEN_PREFIX):].partition("-")
    if not username:
        return None
    user = db.query(User).filter_by(username=username).first()
    if user is None or role_of(user) != role:
        return None
    return user


def require_auth(f):
    """
    Decorator that resolves the bearer token to a user.

    Passes initialized 'user' and 'db' objects to the wrapped function and
    closes the database session afterwards.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        db = next(get_db())
        try:
            user = _user_from_token(db, request.headers.get("Authorization"))
            if user is None:
                return jsonify({"message": "Not authorized, token failed"}), 401
            return f(*args, user=user, db=db, **kwargs)
        finally:
            db.close()
    return decorated


def require_role(role_required):
    """
    Access control decorator layered on `require_auth`.

    Args:
        role_required: The role string ('customer' or 'admin') required for access.

    Returns:
        A specialized decorator function for route protection.
    """
    def decorator(f):
        @wraps(f)
        @require_auth
        def decorated(*args, user, db, **kwargs):
            if role_of(user) != role_required:
                return jsonify({"message": "Not authorized as an admin" if role_required == "admin"
                                else "Insufficient permissions"}), 403
            return f(*args, user=user, db=db, **kwargs)
        return decorated
    return decorator
