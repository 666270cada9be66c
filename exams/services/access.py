"""
Course-level access control for exams.

A learner may see and attempt an exam when its course lets them in: private
courses by the email allow-list, public courses by an active enrollment.
"""
import logging
from dataclasses import dataclass

from exams.models import Course, CourseEnrollment
from exams.permissions import can_manage_exam

logger = logging.getLogger(__name__)

NO_COURSE = "Exam has no associated course"
NOT_ALLOWED = "You are not in the allowed emails list for this private course"
NOT_ENROLLED = "You are not enrolled in this course"
BAD_VISIBILITY = "Course visibility is not properly configured"


@dataclass
class AccessDecision:
    has_access: bool
    reason: str = ''

    def __bool__(self):
        return self.has_access


class AccessGate:
    """Decides whether a learner may see and attempt an exam."""

    @classmethod
    def check(cls, exam, learner) -> AccessDecision:
        course = exam.course
        if course is None:
            return AccessDecision(False, NO_COURSE)

        if can_manage_exam(learner, exam):
            return AccessDecision(True)

        if course.visibility == Course.Visibility.PRIVATE:
            if course.allows_email(learner.email):
                return AccessDecision(True)
            return AccessDecision(False, NOT_ALLOWED)

        if course.visibility == Course.Visibility.PUBLIC:
            if CourseEnrollment.is_active_enrollment(learner, course):
                return AccessDecision(True)
            return AccessDecision(False, NOT_ENROLLED)

        logger.warning(f"Course {course.pk} has unknown visibility {course.visibility!r}")
        return AccessDecision(False, BAD_VISIBILITY)

    @classmethod
    def may_access(cls, exam, learner) -> bool:
        return cls.check(exam, learner).has_access

    @classmethod
    def visible_exams(cls, exams, learner):
        """Filter an iterable of exams down to those the learner may access."""
        return [exam for exam in exams if cls.may_access(exam, learner)]
