"""
Error types for the quiz server.

Every error carries the HTTP status it maps to, so routes can simply raise
and let the registered handler render a JSON body.
"""

from typing import Optional

from flask import jsonify


class QuizAppError(Exception):
    """Base exception for the quiz server."""

    def __init__(self, message: str, code: str = 'UNKNOWN_ERROR', status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class TokenAcquisitionError(QuizAppError):
    """Client credentials missing or rejected, or the token endpoint unreachable."""

    def __init__(self, message: str = 'Failed to get Spotify token'):
        super().__init__(message, code='TOKEN_ERROR', status_code=500)


class CatalogError(QuizAppError):
    """The catalog API rejected a lookup or could not be reached."""

    def __init__(self, message: str = 'Error fetching playlist. Please make sure the playlist ID is correct.',
                 upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        status_code = 404 if upstream_status == 404 else 502
        super().__init__(message, code='CATALOG_ERROR', status_code=status_code)


class ValidationError(QuizAppError):
    def __init__(self, message: str = 'Validation failed'):
        super().__init__(message, code='VALIDATION_ERROR', status_code=400)


class EmptyPlaylistError(QuizAppError):
    def __init__(self, message: str = 'Playlist has no playable tracks'):
        super().__init__(message, code='EMPTY_PLAYLIST', status_code=422)


class QuizStateError(QuizAppError):
    """An event arrived that the current quiz state does not accept."""

    def __init__(self, message: str):
        super().__init__(message, code='INVALID_STATE', status_code=409)


def register_error_handlers(app):
    @app.errorhandler(QuizAppError)
    def handle_quiz_error(error):
        if error.status_code >= 500:
            app.logger.error("%s: %s", error.code, error.message)
        else:
            app.logger.info("%s: %s", error.code, error.message)
        return jsonify(error.to_dict()), error.status_code
