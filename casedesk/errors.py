"""
Error taxonomy and the Flask handlers that render it.

  - ValidationError → 400  missing/empty required input
  - NotFoundError   → 404  id / case_code did not resolve
  - StoreError      → 500  anything raised by the database layer
  - ConflictError   → 409  optimistic append gave up, or case_code already taken
  - anything else   → 500  {"error": "Internal server error"}
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger('casedesk.errors')


class CasedeskError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 500

    def __init__(self, message, details=None, hint=None):
        self.message = message
        self.details = details
        self.hint = hint
        super().__init__(message)

    def to_dict(self):
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        if self.hint:
            body['hint'] = self.hint
        return body


class ValidationError(CasedeskError):
    """Required input missing, empty, or nothing left to write."""
    status_code = 400

    def __init__(self, message, example=None, details=None):
        self.example = example
        super().__init__(message, details=details)

    def to_dict(self):
        body = super().to_dict()
        if self.example is not None:
            body['example'] = self.example
        return body


class NotFoundError(CasedeskError):
    """Raised when a lead cannot be resolved by id or case_code."""
    status_code = 404

    def __init__(self, identifier, kind='lead'):
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class StoreError(CasedeskError):
    """Wraps failures from the underlying database."""
    status_code = 500

    DEFAULT_HINT = 'Check the database connection and table structure'

    @classmethod
    def from_exception(cls, exc, message='Database operation failed'):
        """Build a StoreError with a remediation hint derived from exc."""
        text = str(getattr(exc, 'orig', None) or exc)
        lowered = text.lower()
        if 'no such table' in lowered or ('relation' in lowered and 'does not exist' in lowered):
            hint = 'A required table is missing; run `alembic upgrade head`'
        elif 'column' in lowered and ('no such' in lowered or 'does not exist' in lowered or 'has no column' in lowered):
            hint = 'A required column is missing; run `alembic upgrade head`'
        elif 'unique' in lowered or 'duplicate key' in lowered:
            hint = 'Unique constraint violated (duplicate id or case_code)'
        elif 'not null' in lowered:
            hint = 'A required column was left empty'
        else:
            hint = cls.DEFAULT_HINT
        return cls(message, details=text, hint=hint)


class ConflictError(StoreError):
    """A concurrent writer kept changing the row; the write was abandoned."""
    status_code = 409


def register_error_handlers(app):
    """Render CasedeskError subclasses, HTTP errors and unexpected failures as JSON."""

    @app.errorhandler(CasedeskError)
    def _handle_casedesk_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", error.message, error.details)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    def _handle_unexpected_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'error': error.description}), error.code
        logger.exception("Unhandled error: %s", error)
        return jsonify({'error': 'Internal server error', 'details': str(error)}), 500

    @app.errorhandler(404)
    def _handle_not_found(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(413)
    def _handle_too_large(error):
        return jsonify({'error': 'Request body too large'}), 413
