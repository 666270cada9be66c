"""
Catalog presentation of exams: display strings, schedule formatting,
countdown to the due date, and the action set offered for each phase.
"""
import calendar
import logging
from datetime import datetime
from typing import Optional

from exams.grading import percentage_of
from exams.models import Course, CourseEnrollment
from exams.scheduling import ExamPhase, classify, exam_end, wall_clock

logger = logging.getLogger(__name__)

URGENT_MINUTES = 60
SOON_MINUTES = 180

PRIMARY_ACTIONS = {
    ExamPhase.ACTIVE: ('Start Exam', 'start', 'primary'),
    ExamPhase.UPCOMING: ('View Details', 'view', 'secondary'),
    ExamPhase.COMPLETED: ('View Results', 'results', 'secondary'),
}
DEFAULT_PRIMARY_ACTION = ('Publish', 'publish', 'primary')


def pluralize(count, noun):
    return f"{count} {noun}{'' if count == 1 else 's'}"


def format_date(value):
    """'2025-03-05' -> '05 Mar 2025'; anything unparseable is returned as is."""
    parts = str(value).split('-')
    if len(parts) != 3:
        return value
    try:
        month = calendar.month_abbr[int(parts[1])]
    except (ValueError, IndexError):
        return value
    if not month:
        return value
    return f"{parts[2]} {month} {parts[0]}"


def format_time(value):
    """'14:05' -> '2:05 PM'; anything unparseable is returned as is."""
    parts = str(value).split(':')
    if len(parts) != 2:
        return value
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return value
    suffix = 'PM' if hour >= 12 else 'AM'
    hour = hour % 12 or 12
    return f"{hour}:{minute:02d} {suffix}"


def describe_schedule(exam):
    schedule = {}
    if exam.start_date and exam.start_time:
        schedule['start_date_time'] = f"{exam.start_date} at {exam.start_time}"
        schedule['start_date_formatted'] = format_date(exam.start_date)
        schedule['start_time_formatted'] = format_time(exam.start_time)
    if exam.end_date and exam.end_time:
        end_date = format_date(exam.end_date)
        end_time = format_time(exam.end_time)
        schedule['end_date_time'] = f"{exam.end_date} at {exam.end_time}"
        schedule['end_date_formatted'] = end_date
        schedule['end_time_formatted'] = end_time
        schedule['due_date_time'] = f"Due: {end_date} at {end_time}"
    return schedule


def _countdown_placeholder(label, expired=False):
    return {
        'time_remaining': label,
        'countdown_display': label,
        'total_minutes_remaining': 0,
        'days_remaining': 0,
        'hours_remaining': 0,
        'minutes_remaining': 0,
        'is_expired': expired,
        'is_urgent': False,
        'countdown_color': 'gray',
    }


def countdown(exam, now: Optional[datetime] = None):
    """Time left until the end of the exam window."""
    try:
        end = exam_end(exam)
    except ValueError as e:
        logger.warning(f"Cannot compute countdown for exam {exam.pk}: {e}")
        return _countdown_placeholder('Invalid date')

    if end is None:
        return _countdown_placeholder('No due date')

    now = wall_clock(now)
    if end < now:
        return _countdown_placeholder('Expired', expired=True)

    total_minutes = int((end - now).total_seconds() // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    if days > 0:
        display = f"{days}d {hours}h {minutes}m"
    elif hours > 0:
        display = f"{hours}h {minutes}m"
    else:
        display = f"{minutes}m"

    if total_minutes <= URGENT_MINUTES:
        color = 'red'
    elif total_minutes <= SOON_MINUTES:
        color = 'orange'
    else:
        color = 'green'

    return {
        'time_remaining': display,
        'countdown_display': display,
        'total_minutes_remaining': total_minutes,
        'days_remaining': days,
        'hours_remaining': hours,
        'minutes_remaining': minutes,
        'is_expired': False,
        'is_urgent': total_minutes <= URGENT_MINUTES,
        'countdown_color': color,
    }


def build_actions(phase, has_submitted=False):
    text, action_type, style = PRIMARY_ACTIONS.get(phase, DEFAULT_PRIMARY_ACTION)
    actions = {
        'can_view': True,
        'can_edit': phase != ExamPhase.COMPLETED,
        'can_delete': True,
        'can_start': phase == ExamPhase.ACTIVE,
        'can_publish': phase == ExamPhase.INACTIVE,
        'can_unpublish': phase == ExamPhase.ACTIVE,
        'primary_action': {'text': text, 'type': action_type, 'style': style, 'enabled': True},
    }

    if has_submitted:
        actions['can_start'] = False
        actions['primary_action'] = {
            'text': 'Submitted', 'type': 'submitted', 'style': 'secondary', 'enabled': False
        }
    elif phase == ExamPhase.MISSED:
        actions['can_start'] = False
        actions['primary_action'] = {
            'text': 'Missed', 'type': 'missed', 'style': 'danger', 'enabled': False
        }
    return actions


def student_count(course):
    if course is None:
        return 0
    if course.visibility == Course.Visibility.PUBLIC:
        return CourseEnrollment.active_count(course)
    if course.visibility == Course.Visibility.PRIVATE:
        return len(course.allowed_emails or [])
    return 0


def _person_name(user):
    profile = getattr(user, 'profile', None)
    if profile is not None:
        return profile.display_name
    return user.get_full_name() or user.username


def completed_students(exam):
    """Learners who submitted the exam, most recent attempt first."""
    total_marks = exam.get_total_marks()
    results = exam.results.select_related('user', 'user__profile').order_by('-attempted_at')
    students = [
        {
            'user_id': result.user_id,
            'name': _person_name(result.user),
            'email': result.user.email,
            'username': result.user.username,
            'score': float(result.score),
            'total_marks': total_marks,
            'percentage': float(percentage_of(result.score, total_marks)),
            'passed': result.passed,
            'time_taken': result.time_taken,
            'attempt_date': result.attempted_at.isoformat(),
            'feedback': result.feedback,
        }
        for result in results
    ]
    logger.debug(f"Found {len(students)} completed students for exam {exam.pk}")
    return students


class ExamCatalog:
    """Builds the enriched catalog entry of an exam for one viewer."""

    @classmethod
    def describe(cls, exam, viewer_is_instructor=False, has_submitted=False, now=None):
        course = exam.course
        question_count = exam.get_question_count()
        total_marks = exam.get_total_marks()
        students = student_count(course)

        phase = classify(
            exam, now,
            has_submitted=has_submitted,
            viewer_is_instructor=viewer_is_instructor
        )

        entry = {
            'question_count': question_count,
            'questions_display': pluralize(question_count, 'question'),
            'total_marks': total_marks,
            'marks_display': pluralize(total_marks, 'mark'),
            'student_count': students,
            'students_display': pluralize(students, 'student'),
            'duration_display': pluralize(exam.duration, 'minute'),
            'course_name': course.name if course else 'No Course',
            'instructor_name': cls._instructor_name(course),
            'status': phase.value,
        }
        entry.update(describe_schedule(exam))
        entry.update(countdown(exam, now))

        if not viewer_is_instructor:
            entry['has_submitted'] = has_submitted
            if phase == ExamPhase.MISSED:
                entry['is_expired'] = True
            elif phase in (ExamPhase.COMPLETED, ExamPhase.ACTIVE, ExamPhase.UPCOMING):
                entry['is_expired'] = False

        entry['actions'] = build_actions(phase, has_submitted=has_submitted and not viewer_is_instructor)
        return entry

    @staticmethod
    def _instructor_name(course):
        if course is None or course.instructor is None:
            return 'Unknown'
        return _person_name(course.instructor)
