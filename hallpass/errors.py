"""
Domain errors for the hall pass lifecycle.

Each error carries the HTTP status the API layer should answer with and a
short machine-readable code, so the request layer can render a uniform
error response without knowing about storage internals.
"""

from flask import jsonify, request


class PassError(Exception):
    """Base class for all hall pass domain errors."""
    status_code = 500
    code = 'internal_error'

    def __init__(self, message, status_code=None, code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self):
        return {"status": "error", "code": self.code, "message": self.message}


class ValidationError(PassError):
    """Malformed input: missing ids, unknown pass type, bad dates."""
    status_code = 400
    code = 'validation_error'


class NotFoundError(PassError):
    status_code = 404
    code = 'not_found'


class ConflictError(PassError):
    status_code = 409
    code = 'conflict'


class InvalidTransitionError(ConflictError):
    code = 'invalid_transition'


class AlreadyOutError(ConflictError):
    """Raised when a student who already has an active pass is issued another."""
    code = 'already_out'

    def __init__(self, message, existing_pass=None):
        super().__init__(message)
        self.existing_pass = existing_pass


class AlreadyReturnedError(ConflictError):
    code = 'already_returned'


def register_error_handlers(bp):
    """Render PassError subclasses raised inside a blueprint as JSON."""
    @bp.errorhandler(PassError)
    def handle_pass_error(error):
        payload = error.to_dict()
        existing = getattr(error, 'existing_pass', None)
        if existing is not None:
            # Imported lazily; pass_service imports this module
            from hallpass.utils.pass_service import serialize_pass
            payload['existingPass'] = serialize_pass(existing)
        return jsonify(payload), error.status_code


def register_app_error_handlers(app):
    """JSON responses for HTTP errors raised outside the pass API."""
    from hallpass.extensions import db

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning(f"404 Not Found: {request.url}")
        return jsonify({"status": "error", "message": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"status": "error", "message": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limited(error):
        app.logger.warning(f"429 Rate limited: {request.path}")
        return jsonify({"status": "error", "message": "Too many requests"}), 429

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error occurred")
        db.session.rollback()
        return jsonify({"status": "error", "message": "Internal server error"}), 500
