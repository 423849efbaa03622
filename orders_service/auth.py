from functools import wraps

import jwt
from flask import current_app, g, request

from orders_service.errors import Forbidden, Unauthorized
from orders_service.models import ADMIN_ROLES


# ---------- Auth helpers ----------
def current_user():
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    try:
        payload = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config.get("JWT_ALGO", "HS256")],
            options={"verify_sub": False},
        )
    except jwt.PyJWTError:
        return None
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    return {"id": user_id, "role": str(payload.get("role") or "USER").upper()}


def require_auth(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        u = current_user()
        if not u:
            raise Unauthorized()
        g.current_user = u
        return func(*args, **kwargs)

    return wrapper


def require_admin(func):
    @wraps(func)
    @require_auth
    def wrapper(*args, **kwargs):
        if g.current_user["role"] not in ADMIN_ROLES:
            raise Forbidden("Admin role required")
        return func(*args, **kwargs)

    return wrapper
