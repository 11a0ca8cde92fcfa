"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; app.py registers a Flask error handler per class that
turns them into a JSON body of the form {"error": message}. Internal detail
is logged server-side only and never placed in `message`.
"""
from typing import Optional


class HubError(Exception):
    """Base class for errors that map to an HTTP status"""

    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {'error': self.message}


class ValidationError(HubError):
    """Malformed or missing input the user can correct"""

    status_code = 400
    default_message = 'Invalid request'

    def __init__(self, message: Optional[str] = None, suggestion: Optional[str] = None):
        super().__init__(message)
        self.suggestion = suggestion

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.suggestion:
            body['suggestion'] = self.suggestion
        return body


class NotFoundError(HubError):
    status_code = 404
    default_message = 'Resource not found'


class UpstreamError(HubError):
    """External provider (AI, geocoding, feed) failed or timed out"""

    status_code = 502
    default_message = 'External service unavailable, please try again later'


class InternalError(HubError):
    status_code = 500
    default_message = 'Internal server error'
