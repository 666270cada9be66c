from .course import Course
from .enrollment import CourseEnrollment
from .exam import Exam
from .question import Question, Option
from .result import Result
from .audit import AuditLog
from .user_profile import UserProfile

__all__ = [
    'Course', 'CourseEnrollment', 'Exam', 'Question', 'Option',
    'Result', 'AuditLog', 'UserProfile',
]
