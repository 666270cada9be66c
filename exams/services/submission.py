"""
Submission coordinator: turns a learner's answers into exactly one graded,
persisted result.

Flow: resolve exam and learner -> reject duplicates -> score -> persist under
a synthesized identifier (one retry with an alternate derivation) -> feedback
and completion statistics -> result email after commit.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Optional

from django.conf import settings
from django.contrib.auth.models import User
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from exams.exceptions import DuplicateSubmission, ExamNotFound, LearnerNotFound, PersistenceFailure
from exams.grading import ScoringEngine, normalize_answers, round_half_up
from exams.models import Exam, Result

logger = logging.getLogger(__name__)

MANUAL_REVIEW_FEEDBACK = "Exam completed. Manual review required."
FAILED_FEEDBACK = "You did not meet the passing criteria (60%). Please review the material and try again."
PASSED_TIERS = (
    (Decimal('90'), "Excellent work! Outstanding performance."),
    (Decimal('80'), "Great job! Very good performance."),
    (Decimal('70'), "Good work! Solid performance."),
)
PASSED_FEEDBACK = "You passed! Keep up the good work."


def primary_result_id(millis: int, learner_id: int, exam_id: int) -> int:
    return millis + learner_id * 1000 + exam_id


def alternate_result_id(millis: int, learner_id: int, exam_id: int) -> int:
    return millis + learner_id * 10000 + exam_id * 100


def build_feedback(score: Decimal, total_marks: int, percentage: Decimal, passed: bool) -> str:
    if not total_marks:
        return MANUAL_REVIEW_FEEDBACK

    summary = f"You scored {score} out of {total_marks} marks ({percentage}%). "
    if not passed:
        return summary + FAILED_FEEDBACK

    for threshold, text in PASSED_TIERS:
        if percentage >= threshold:
            return summary + text
    return summary + PASSED_FEEDBACK


def completion_stats(exam, answers: Dict[str, str]):
    """(total questions, answered questions, completion percentage as an int)."""
    question_ids = {str(pk) for pk in exam.questions.values_list('pk', flat=True)}
    total = len(question_ids)
    answered = sum(
        1 for key, value in answers.items()
        if key in question_ids and value.strip()
    )
    if not total:
        return total, answered, 0
    completion = round_half_up(Decimal(answered) / Decimal(total) * 100, Decimal('1'))
    return total, answered, int(completion)


@dataclass
class SubmissionReceipt:
    result_id: int
    exam_id: int
    exam_title: str
    score: Decimal
    total_marks: int
    percentage: Decimal
    passed: bool
    total_questions: int
    answered_questions: int
    completion_percentage: int
    time_taken: int
    feedback: str
    submitted_at: datetime

    def as_dict(self):
        data = asdict(self)
        data['score'] = float(self.score)
        data['percentage'] = float(self.percentage)
        data['submitted_at'] = self.submitted_at.isoformat()
        return data


class SubmissionCoordinator:
    """
    Grades and stores a learner's single attempt at an exam.

    `notifier` is called as notifier(learner, exam, result, answers) after the
    surrounding transaction commits; `clock` returns the submission time.
    """

    def __init__(self, notifier: Optional[Callable] = None, clock: Optional[Callable] = None,
                 engine: Optional[ScoringEngine] = None):
        if notifier is None:
            from exams.services.notification import NotificationService
            notifier = NotificationService.send_exam_result_notification
        self.notifier = notifier
        self.clock = clock or timezone.now
        self.engine = engine or ScoringEngine()

    def submit(self, exam_id, username: str, answers: Optional[Dict], time_taken: int = 0) -> SubmissionReceipt:
        exam = self._load_exam(exam_id)
        learner = self._load_learner(username)

        if Result.objects.filter(user=learner, exam=exam).exists():
            logger.warning(f"User {username} has already submitted exam {exam.pk}")
            raise DuplicateSubmission()

        snapshot = normalize_answers(answers)
        card = self.engine.score(exam, snapshot)
        percentage = card.percentage
        feedback = build_feedback(card.raw_score, card.total_marks, percentage, card.passed)
        submitted_at = self.clock()

        result = self._persist(
            exam, learner,
            score=card.raw_score,
            passed=card.passed,
            time_taken=max(int(time_taken or 0), 0),
            attempted_at=submitted_at,
            feedback=feedback,
            answers=snapshot
        )
        logger.info(
            f"Saved result {result.pk} for {username} on exam {exam.pk}: "
            f"{card.raw_score}/{card.total_marks} ({percentage}%), passed={card.passed}"
        )

        total_questions, answered, completion = completion_stats(exam, snapshot)
        self._schedule_notification(learner, exam, result, snapshot)

        return SubmissionReceipt(
            result_id=result.pk,
            exam_id=exam.pk,
            exam_title=exam.title,
            score=card.raw_score,
            total_marks=card.total_marks,
            percentage=percentage,
            passed=card.passed,
            total_questions=total_questions,
            answered_questions=answered,
            completion_percentage=completion,
            time_taken=result.time_taken,
            feedback=feedback,
            submitted_at=submitted_at
        )

    def _load_exam(self, exam_id):
        try:
            return Exam.objects.select_related('course').prefetch_related(
                'questions__options'
            ).get(pk=exam_id)
        except (Exam.DoesNotExist, ValueError, TypeError):
            logger.warning(f"Submission for unknown exam {exam_id}")
            raise ExamNotFound()

    def _load_learner(self, username):
        try:
            return User.objects.get(username=username)
        except User.DoesNotExist:
            logger.warning(f"Submission by unknown user {username}")
            raise LearnerNotFound()

    def _persist(self, exam, learner, **fields):
        millis = int(fields['attempted_at'].timestamp() * 1000)
        candidates = (
            primary_result_id(millis, learner.pk, exam.pk),
            alternate_result_id(millis, learner.pk, exam.pk),
        )

        for attempt, result_id in enumerate(candidates, start=1):
            try:
                with transaction.atomic():
                    return Result.objects.create(id=result_id, exam=exam, user=learner, **fields)
            except IntegrityError as e:
                if Result.objects.filter(user=learner, exam=exam).exists():
                    logger.warning(f"Concurrent submission detected for {learner.username} on exam {exam.pk}")
                    raise DuplicateSubmission()
                logger.warning(f"Result id {result_id} rejected on attempt {attempt}: {e}")
            except DatabaseError as e:
                logger.error(f"Database error saving result {result_id} on attempt {attempt}: {e}")

        logger.error(f"Failed to save result for {learner.username} on exam {exam.pk}")
        raise PersistenceFailure()

    def _schedule_notification(self, learner, exam, result, answers):
        if not getattr(settings, 'EXAM_ENGINE', {}).get('RESULT_EMAILS_ENABLED', True):
            return

        def notify():
            try:
                self.notifier(learner, exam, result, answers)
            except Exception as e:
                logger.error(f"Result notification failed for {learner.username} on exam {exam.pk}: {e}")

        transaction.on_commit(notify)
