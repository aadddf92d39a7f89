from flask import request

from services.errors import ValidationError
from services.revisions import Scope


def int_value(value, name):
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{name} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def int_arg(name):
    return int_value(request.args.get(name), name)


def scope_from(values):
    scope_type = (values.get("scope_type") or "").strip().lower()
    return Scope(scope_type, int_value(values.get("scope_id"), "scope_id"))


def as_bool(value, default=True):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")
