# Overview: Request decorators for API routes (identity context, service error translation).

from functools import wraps
from flask import request, jsonify, g, current_app

from .extensions import db
from .models import Company
from .validation import (
    ValidationError, ConflictError, NotFoundError, TotalChangedError, TransactionFailed,
)


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw.strip())


def require_identity(f):
    """
    Establish tenant and operator context from the session layer.

    Authentication happens upstream; it forwards the resolved identity as
    headers. Sets the following Flask g attributes:
    - g.company_id: The tenant (company) ID - REQUIRED
    - g.user_id: The operator or customer user ID (may be None)
    - g.user_name: Display name used in order history (may be None)

    Returns 401 if the company header is missing and 404 if the company does
    not exist or is inactive (without revealing which).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        company_id = _header_int("X-Company-Id")
        if company_id is None:
            return jsonify({"error": "Tenant context required"}), 401

        company = db.session.query(Company).filter_by(id=company_id).first()
        if company is None or not company.is_active:
            return jsonify({"error": "Company not found"}), 404

        g.company_id = company_id
        g.user_id = _header_int("X-User-Id")
        g.user_name = (request.headers.get("X-User-Name") or "").strip() or None

        return f(*args, **kwargs)

    return decorated_function


def translate_service_errors(action: str):
    """
    Map service exceptions to JSON error responses.

    ValidationError 400, NotFoundError 404, ConflictError 409,
    TransactionFailed 503 (retryable), anything else 500 (logged).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e)}), 404
            except TotalChangedError as e:
                return jsonify({"error": str(e), "details": e.details}), 409
            except ConflictError as e:
                return jsonify({"error": str(e)}), 409
            except TransactionFailed as e:
                return jsonify({"error": str(e), "details": e.details, "retryable": e.retryable}), 503
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
