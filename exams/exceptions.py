from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class ExamNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Exam not found.'
    default_code = 'exam_not_found'


class LearnerNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'User not found.'
    default_code = 'learner_not_found'


class DuplicateSubmission(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'You have already submitted this exam.'
    default_code = 'duplicate_submission'


class PersistenceFailure(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Failed to save exam result. Please try again.'
    default_code = 'persistence_failure'


def api_exception_handler(exc, context):
    """DRF's handler, plus the error code alongside a plain `detail` message."""
    response = exception_handler(exc, context)
    if response is not None and isinstance(exc, APIException):
        if isinstance(response.data, dict) and 'detail' in response.data:
            codes = exc.get_codes()
            response.data['code'] = codes if isinstance(codes, str) else exc.default_code
    return response
