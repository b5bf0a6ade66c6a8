"""
Error taxonomy for the proficiency platform API.
Every error serialises to {"ok": false, "error": {"code", "message"}}.
"""


class ApiError(Exception):
    status_code = 500
    code = 'SERVER_ERROR'
    message = 'Unexpected server error.'

    def __init__(self, message=None, code=None, details=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        if code:
            self.code = code
        self.details = details

    def to_dict(self):
        error = {'code': self.code, 'message': self.message}
        if self.details is not None:
            error['details'] = self.details
        return {'ok': False, 'error': error}


class ValidationError(ApiError):
    status_code = 422
    code = 'VALIDATION_ERROR'
    message = 'Invalid input'


class BadRequest(ApiError):
    status_code = 400
    code = 'BAD_REQUEST'
    message = 'Bad request'


class Unauthorized(ApiError):
    status_code = 401
    code = 'UNAUTHORIZED'
    message = 'Unauthorized'


class NotFound(ApiError):
    status_code = 404
    code = 'NOT_FOUND'
    message = 'Not found'


class Conflict(ApiError):
    status_code = 409
    code = 'CONFLICT'
    message = 'Conflict'


class NoQuestionsConfigured(Conflict):
    code = 'NO_QUESTIONS_CONFIGURED'
    message = 'No questions configured.'


class UploadError(ApiError):
    status_code = 400
    code = 'UPLOAD_ERROR'
    message = 'Failed to save files.'


class RenderUnavailable(ApiError):
    status_code = 503
    code = 'RENDER_UNAVAILABLE'
    message = 'Certificate rendering is unavailable.'
