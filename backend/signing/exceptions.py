"""
Domain errors raised by the signing workflow.

Each error carries the HTTP status and machine-readable code that
``signing.handlers.signing_exception_handler`` renders.
"""


class SigningError(Exception):
    status_code = 400
    code = 'error'
    default_message = 'The request could not be processed'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(SigningError):
    status_code = 400
    code = 'validation_error'
    default_message = 'Invalid request'


class NotFoundError(SigningError):
    status_code = 404
    code = 'not_found'
    default_message = 'Not found'


class StateConflictError(SigningError):
    status_code = 409
    code = 'state_conflict'
    default_message = 'The request conflicts with the current state'


class AccessDeniedError(SigningError):
    status_code = 403
    code = 'access_denied'
    default_message = 'Access denied'


class DependencyFailure(SigningError):
    status_code = 502
    code = 'dependency_failure'
    default_message = 'An external dependency failed'
