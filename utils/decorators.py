import logging
from functools import wraps

from flask import jsonify

from extensions import db
from services.errors import OBEError

logger = logging.getLogger(__name__)


def handles_obe_errors(func):
    """Turn engine errors into JSON responses and drop any half-done session work."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except OBEError as exc:
            db.session.rollback()
            logger.info("%s %s: %s", func.__name__, exc.error_code, exc.message)
            return jsonify(exc.to_dict()), exc.status_code
    return wrapper


def json_body(request):
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
