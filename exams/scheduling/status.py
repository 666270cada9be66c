import logging
from datetime import datetime
from typing import Optional

from django.db import models

from .window import exam_end, exam_start, parse_end_of_day, wall_clock

logger = logging.getLogger(__name__)


class ExamPhase(models.TextChoices):
    UPCOMING = 'upcoming', 'Upcoming'
    ACTIVE = 'active', 'Active'
    INACTIVE = 'inactive', 'Inactive'
    COMPLETED = 'completed', 'Completed'
    MISSED = 'missed', 'Missed'


def _flag_phase(exam) -> ExamPhase:
    return ExamPhase.ACTIVE if exam.is_active else ExamPhase.INACTIVE


def classify(
    exam,
    now: Optional[datetime] = None,
    *,
    has_submitted: bool = False,
    viewer_is_instructor: bool = False
) -> ExamPhase:
    """
    Label an exam with its lifecycle phase for one viewer.

    Instructors see upcoming -> active/inactive -> completed. Learners see a
    submitted exam as completed regardless of time, and an elapsed window
    without a submission as missed. Never raises: malformed window strings
    degrade to a date-only check of the end date, then to the active flag.
    """
    if not viewer_is_instructor and has_submitted:
        return ExamPhase.COMPLETED

    now = wall_clock(now)
    elapsed = ExamPhase.COMPLETED if viewer_is_instructor else ExamPhase.MISSED

    try:
        start = exam_start(exam)
        if start is not None and now < start:
            return ExamPhase.UPCOMING

        end = exam_end(exam)
        if end is not None and now > end:
            return elapsed

        return _flag_phase(exam)
    except ValueError as e:
        logger.warning(f"Malformed schedule on exam {exam.pk} ({exam.title}): {e}")

    try:
        end_of_day = parse_end_of_day(exam.end_date)
        if end_of_day is not None and now > end_of_day:
            return elapsed
    except ValueError:
        logger.error(f"Date-only fallback failed for exam {exam.pk}, using active flag")

    return _flag_phase(exam)
