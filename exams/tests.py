"""
Test cases for ExamPort.
Covers scoring, lifecycle status, access control, submission and the API.
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO

from django.contrib.auth.models import User
from django.core import mail
from django.core.cache import cache
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APITestCase

from .exceptions import DuplicateSubmission, ExamNotFound, LearnerNotFound, PersistenceFailure
from .grading import ScoringEngine, is_passing, letter_grade
from .models import AuditLog, Course, CourseEnrollment, Exam, Option, Question, Result, UserProfile
from .scheduling import ExamPhase, classify, wall_clock
from .services import AccessGate, ExamCatalog, SubmissionCoordinator
from .services.access import NO_COURSE, NOT_ALLOWED, NOT_ENROLLED, BAD_VISIBILITY
from .services.catalog import build_actions, countdown, format_date, format_time, student_count
from .services.submission import alternate_result_id, build_feedback, primary_result_id


def make_user(username, role=UserProfile.Role.STUDENT, email=None):
    user = User.objects.create_user(username, email or f'{username}@test.com', 'pass12345')
    user.profile.role = role
    user.profile.save()
    return user


def add_question(exam, question_type, marks, options=(), correct=(), order=0):
    question = Question.objects.create(
        exam=exam,
        question_type=question_type,
        text=f'{question_type} question',
        marks=marks,
        correct_options=list(correct),
        order=order
    )
    for position, text in enumerate(options):
        Option.objects.create(question=question, text=text, position=position)
    return question


def make_exam(course, **kwargs):
    """Exam worth 6 marks: one single-choice, one multi-choice, one free-text question."""
    exam = Exam.objects.create(title=kwargs.pop('title', 'Geography Quiz'), course=course, **kwargs)
    exam.mcq = add_question(exam, Question.QuestionType.SINGLE_CHOICE, 2, ['Paris', 'London', 'Rome'], [0], 1)
    exam.multi = add_question(exam, Question.QuestionType.MULTI_CHOICE, 2, ['A', 'B', 'C', 'D'], [0, 1], 2)
    exam.text = add_question(exam, Question.QuestionType.FREE_TEXT, 2, order=3)
    return exam


def open_window(hours_before=24, hours_after=24):
    now = wall_clock()
    start = now - timedelta(hours=hours_before)
    end = now + timedelta(hours=hours_after)
    return {
        'start_date': start.strftime('%Y-%m-%d'),
        'start_time': start.strftime('%H:%M'),
        'end_date': end.strftime('%Y-%m-%d'),
        'end_time': end.strftime('%H:%M'),
    }


def all_correct(exam):
    return {
        str(exam.mcq.pk): 'Paris',
        str(exam.multi.pk): 'A,B',
        str(exam.text.pk): 'A decorator wraps a function.',
    }


class ScoringEngineTests(TestCase):
    """Tests for answer scoring."""

    def setUp(self):
        self.course = Course.objects.create(name='Geography', visibility=Course.Visibility.PUBLIC)
        self.exam = make_exam(self.course)
        self.engine = ScoringEngine()

    def score(self, answers):
        return self.engine.score(self.exam, answers)

    def test_total_marks_derived_from_question_weights(self):
        add_question(self.exam, Question.QuestionType.FREE_TEXT, None, order=4)
        self.assertEqual(self.exam.get_total_marks(), 7)

    def test_explicit_total_marks_wins(self):
        self.exam.total_marks = 20
        self.assertEqual(self.exam.get_total_marks(), 20)

    def test_single_choice_matches_text_id_or_index(self):
        correct_option = self.exam.mcq.ordered_options()[0]
        for answer in ['Paris', str(correct_option.pk), '0', '  Paris  ']:
            card = self.score({str(self.exam.mcq.pk): answer})
            self.assertEqual(card.raw_score, Decimal('2.00'), answer)

    def test_single_choice_wrong_answer(self):
        card = self.score({str(self.exam.mcq.pk): 'Rome'})
        self.assertEqual(card.raw_score, Decimal('0.00'))

    def test_single_choice_out_of_range_key_awards_nothing(self):
        self.exam.mcq.correct_options = [7]
        self.exam.mcq.save()
        card = self.score({str(self.exam.mcq.pk): 'Paris'})
        self.assertEqual(card.raw_score, Decimal('0.00'))

    def test_multi_choice_exact_set_gets_full_weight(self):
        card = self.score({str(self.exam.multi.pk): 'A, B'})
        self.assertEqual(card.raw_score, Decimal('2.00'))

    def test_multi_choice_one_right_one_wrong_cancels_out(self):
        card = self.score({str(self.exam.multi.pk): 'A,C'})
        self.assertEqual(card.raw_score, Decimal('0.00'))

    def test_multi_choice_partial_credit(self):
        self.assertEqual(self.score({str(self.exam.multi.pk): 'A'}).raw_score, Decimal('1.00'))
        self.assertEqual(self.score({str(self.exam.multi.pk): 'A,B,C'}).raw_score, Decimal('1.00'))

    def test_multi_choice_ignores_duplicates_and_empty_fragments(self):
        card = self.score({str(self.exam.multi.pk): 'A,,A, B,'})
        self.assertEqual(card.raw_score, Decimal('2.00'))

    def test_multi_choice_list_value(self):
        card = self.score({self.exam.multi.pk: ['A', 'B']})
        self.assertEqual(card.raw_score, Decimal('2.00'))

    def test_free_text_non_blank_gets_full_weight(self):
        self.assertEqual(self.score({str(self.exam.text.pk): 'anything'}).raw_score, Decimal('2.00'))
        self.assertEqual(self.score({str(self.exam.text.pk): '   '}).raw_score, Decimal('0.00'))

    def test_raw_score_rounded_half_up(self):
        question = add_question(
            self.exam, Question.QuestionType.MULTI_CHOICE, 1, ['X', 'Y', 'Z'], [0, 1, 2], 4
        )
        card = self.score({str(question.pk): 'X'})
        self.assertEqual(card.raw_score, Decimal('0.33'))

    def test_full_marks_pass(self):
        card = self.score(all_correct(self.exam))
        self.assertEqual(card.raw_score, Decimal('6.00'))
        self.assertEqual(card.total_marks, 6)
        self.assertTrue(card.passed)
        self.assertEqual(len(card.awards), 3)

    def test_pass_threshold(self):
        self.assertTrue(is_passing(Decimal('3.60'), 6))
        self.assertFalse(is_passing(Decimal('3.59'), 6))
        self.assertFalse(is_passing(Decimal('0'), 0))

    def test_letter_grades(self):
        self.assertEqual(letter_grade(Decimal('95')), 'A+')
        self.assertEqual(letter_grade(Decimal('80')), 'A')
        self.assertEqual(letter_grade(Decimal('72.5')), 'B+')
        self.assertEqual(letter_grade(Decimal('60')), 'B')
        self.assertEqual(letter_grade(Decimal('50')), 'C')
        self.assertEqual(letter_grade(Decimal('49.99')), 'F')


class ExamStatusTests(TestCase):
    """Tests for lifecycle classification."""

    def make(self, **kwargs):
        fields = {
            'title': 'Midterm',
            'start_date': '2025-03-10', 'start_time': '09:00',
            'end_date': '2025-03-10', 'end_time': '17:00',
            'is_active': True,
        }
        fields.update(kwargs)
        return Exam(**fields)

    def test_before_start_is_upcoming_for_everyone(self):
        exam = self.make()
        now = datetime(2025, 3, 10, 8, 0)
        self.assertEqual(classify(exam, now), ExamPhase.UPCOMING)
        self.assertEqual(classify(exam, now, viewer_is_instructor=True), ExamPhase.UPCOMING)

    def test_after_end_is_missed_for_learner_and_completed_for_instructor(self):
        exam = self.make()
        now = datetime(2025, 3, 10, 18, 0)
        self.assertEqual(classify(exam, now), ExamPhase.MISSED)
        self.assertEqual(classify(exam, now, viewer_is_instructor=True), ExamPhase.COMPLETED)

    def test_submitted_learner_sees_completed(self):
        exam = self.make()
        self.assertEqual(classify(exam, datetime(2025, 3, 10, 8, 0), has_submitted=True), ExamPhase.COMPLETED)

    def test_inside_window_follows_active_flag(self):
        now = datetime(2025, 3, 10, 12, 0)
        self.assertEqual(classify(self.make(), now), ExamPhase.ACTIVE)
        self.assertEqual(classify(self.make(is_active=False), now), ExamPhase.INACTIVE)

    def test_missing_bounds_follow_active_flag(self):
        exam = self.make(start_date='', end_time='')
        self.assertEqual(classify(exam, datetime(2030, 1, 1)), ExamPhase.ACTIVE)

    def test_malformed_end_time_falls_back_to_end_of_day(self):
        exam = self.make(end_time='late')
        self.assertEqual(classify(exam, datetime(2025, 3, 11, 0, 1)), ExamPhase.MISSED)
        self.assertEqual(
            classify(exam, datetime(2025, 3, 11, 0, 1), viewer_is_instructor=True),
            ExamPhase.COMPLETED
        )
        self.assertEqual(classify(exam, datetime(2025, 3, 10, 23, 30)), ExamPhase.ACTIVE)

    def test_unparseable_dates_fall_back_to_flag(self):
        exam = self.make(end_date='soon', is_active=False)
        self.assertEqual(classify(exam, datetime(2025, 3, 12)), ExamPhase.INACTIVE)

    def test_aware_now_is_compared_as_local_wall_clock(self):
        exam = self.make()
        now = datetime(2025, 3, 10, 18, 0, tzinfo=dt_timezone.utc)
        with self.settings(TIME_ZONE='UTC'):
            self.assertEqual(classify(exam, now), ExamPhase.MISSED)


class CatalogFormattingTests(TestCase):
    """Tests for catalog display helpers."""

    def setUp(self):
        self.exam = Exam(title='Final', end_date='2025-03-10', end_time='17:00')

    def test_format_date_and_time(self):
        self.assertEqual(format_date('2025-03-05'), '05 Mar 2025')
        self.assertEqual(format_time('14:05'), '2:05 PM')
        self.assertEqual(format_time('00:30'), '12:30 AM')
        self.assertEqual(format_date('not-a-date'), 'not-a-date')

    def test_countdown_days(self):
        info = countdown(self.exam, datetime(2025, 3, 8, 14, 30))
        self.assertEqual(info['countdown_display'], '2d 2h 30m')
        self.assertEqual(info['countdown_color'], 'green')
        self.assertFalse(info['is_urgent'])

    def test_countdown_urgent_and_soon(self):
        urgent = countdown(self.exam, datetime(2025, 3, 10, 16, 15))
        self.assertEqual(urgent['countdown_display'], '45m')
        self.assertTrue(urgent['is_urgent'])
        self.assertEqual(urgent['countdown_color'], 'red')

        soon = countdown(self.exam, datetime(2025, 3, 10, 15, 0))
        self.assertEqual(soon['countdown_display'], '2h 0m')
        self.assertEqual(soon['countdown_color'], 'orange')

    def test_countdown_expired_and_missing(self):
        expired = countdown(self.exam, datetime(2025, 3, 11))
        self.assertEqual(expired['countdown_display'], 'Expired')
        self.assertTrue(expired['is_expired'])

        self.assertEqual(countdown(Exam(title='Open'))['countdown_display'], 'No due date')
        self.assertEqual(countdown(Exam(title='Bad', end_date='x', end_time='y'))['countdown_display'], 'Invalid date')

    def test_countdown_at_end_agrees_with_status(self):
        at_end = datetime(2025, 3, 10, 17, 0)
        info = countdown(self.exam, at_end)
        self.assertFalse(info['is_expired'])
        self.assertEqual(info['countdown_display'], '0m')

        course = Course.objects.create(name='Boundary', visibility=Course.Visibility.PUBLIC)
        exam = make_exam(course, start_date='2025-03-10', start_time='09:00',
                         end_date='2025-03-10', end_time='17:00', is_active=True)
        entry = ExamCatalog.describe(exam, viewer_is_instructor=True, now=at_end)
        self.assertEqual(entry['status'], 'active')
        self.assertFalse(entry['is_expired'])

    def test_actions_per_phase(self):
        active = build_actions(ExamPhase.ACTIVE)
        self.assertTrue(active['can_start'])
        self.assertTrue(active['can_unpublish'])
        self.assertEqual(active['primary_action']['type'], 'start')

        self.assertFalse(build_actions(ExamPhase.COMPLETED)['can_edit'])
        self.assertEqual(build_actions(ExamPhase.INACTIVE)['primary_action']['text'], 'Publish')

        submitted = build_actions(ExamPhase.COMPLETED, has_submitted=True)
        self.assertEqual(submitted['primary_action']['type'], 'submitted')
        self.assertFalse(submitted['primary_action']['enabled'])

        missed = build_actions(ExamPhase.MISSED)
        self.assertEqual(missed['primary_action']['style'], 'danger')
        self.assertFalse(missed['can_start'])

    def test_learner_entry_for_missed_exam(self):
        course = Course.objects.create(name='History', visibility=Course.Visibility.PRIVATE,
                                       allowed_emails=['a@test.com', 'b@test.com', 'c@test.com'])
        exam = make_exam(course, start_date='2025-03-10', start_time='09:00',
                         end_date='2025-03-10', end_time='17:00', is_active=True)
        entry = ExamCatalog.describe(exam, now=datetime(2025, 3, 11))
        self.assertEqual(entry['status'], 'missed')
        self.assertTrue(entry['is_expired'])
        self.assertEqual(entry['actions']['primary_action']['text'], 'Missed')
        self.assertEqual(entry['questions_display'], '3 questions')
        self.assertEqual(entry['marks_display'], '6 marks')
        self.assertEqual(entry['students_display'], '3 students')
        self.assertEqual(entry['instructor_name'], 'Unknown')
        self.assertEqual(entry['due_date_time'], 'Due: 10 Mar 2025 at 5:00 PM')


class AccessGateTests(TestCase):
    """Tests for course-level exam access."""

    def setUp(self):
        self.learner = make_user('learner', email='learner@example.com')
        self.instructor = make_user('prof', role=UserProfile.Role.INSTRUCTOR)

    def test_exam_without_course_is_denied(self):
        exam = Exam.objects.create(title='Orphan')
        decision = AccessGate.check(exam, self.learner)
        self.assertFalse(decision.has_access)
        self.assertEqual(decision.reason, NO_COURSE)

    def test_private_course_uses_allow_list_case_insensitively(self):
        course = Course.objects.create(name='Private', allowed_emails=[' Learner@Example.com '])
        exam = Exam.objects.create(title='Secret', course=course)
        self.assertTrue(AccessGate.may_access(exam, self.learner))

        other = make_user('other')
        decision = AccessGate.check(exam, other)
        self.assertFalse(decision)
        self.assertEqual(decision.reason, NOT_ALLOWED)

    def test_public_course_requires_active_enrollment(self):
        course = Course.objects.create(name='Public', visibility=Course.Visibility.PUBLIC)
        exam = Exam.objects.create(title='Open', course=course)
        self.assertEqual(AccessGate.check(exam, self.learner).reason, NOT_ENROLLED)

        enrollment = CourseEnrollment.objects.create(course=course, student=self.learner)
        self.assertTrue(AccessGate.may_access(exam, self.learner))
        self.assertEqual(student_count(course), 1)

        enrollment.status = CourseEnrollment.Status.REVOKED
        enrollment.save()
        self.assertFalse(AccessGate.may_access(exam, self.learner))

    def test_unknown_visibility_is_denied(self):
        course = Course.objects.create(name='Odd', visibility='SECRET')
        exam = Exam.objects.create(title='Odd exam', course=course)
        self.assertEqual(AccessGate.check(exam, self.learner).reason, BAD_VISIBILITY)

    def test_course_instructor_bypasses_gate(self):
        course = Course.objects.create(name='Taught', instructor=self.instructor)
        exam = Exam.objects.create(title='Taught exam', course=course)
        self.assertTrue(AccessGate.may_access(exam, self.instructor))


class SubmissionCoordinatorTests(TestCase):
    """Tests for grading and persisting a submission."""

    FIXED_NOW = datetime(2025, 1, 1, tzinfo=dt_timezone.utc)

    def setUp(self):
        self.learner = make_user('learner')
        self.course = Course.objects.create(name='Geography', visibility=Course.Visibility.PUBLIC)
        CourseEnrollment.objects.create(course=self.course, student=self.learner)
        self.exam = make_exam(self.course)
        self.notified = []
        self.coordinator = SubmissionCoordinator(
            notifier=lambda *args: self.notified.append(args),
            clock=lambda: self.FIXED_NOW
        )

    def millis(self):
        return int(self.FIXED_NOW.timestamp() * 1000)

    def test_full_marks_submission(self):
        receipt = self.coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam), 125)
        self.assertEqual(receipt.score, Decimal('6.00'))
        self.assertEqual(receipt.percentage, Decimal('100.00'))
        self.assertTrue(receipt.passed)
        self.assertIn('Excellent work! Outstanding performance.', receipt.feedback)

        result = Result.objects.get(user=self.learner, exam=self.exam)
        self.assertEqual(result.pk, receipt.result_id)
        self.assertEqual(result.pk, primary_result_id(self.millis(), self.learner.pk, self.exam.pk))
        self.assertEqual(result.time_taken_display, '2:05')
        self.assertEqual(result.answers[str(self.exam.mcq.pk)], 'Paris')

    def test_duplicate_submission_rejected(self):
        self.coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        with self.assertRaises(DuplicateSubmission):
            self.coordinator.submit(self.exam.pk, 'learner', {})
        self.assertEqual(Result.objects.filter(user=self.learner, exam=self.exam).count(), 1)

    def test_feedback_embeds_rounded_percentage(self):
        receipt = self.coordinator.submit(self.exam.pk, 'learner', {str(self.exam.mcq.pk): 'Paris'})
        self.assertEqual(receipt.percentage, Decimal('33.33'))
        self.assertFalse(receipt.passed)
        self.assertTrue(receipt.feedback.startswith('You scored 2.00 out of 6 marks (33.33%).'))
        self.assertIn('passing criteria (60%)', receipt.feedback)

    def test_completion_stats_count_only_exam_questions(self):
        answers = {
            str(self.exam.mcq.pk): 'Paris',
            str(self.exam.multi.pk): 'A',
            str(self.exam.text.pk): '   ',
            '999999': 'stray',
        }
        receipt = self.coordinator.submit(self.exam.pk, 'learner', answers)
        self.assertEqual(receipt.total_questions, 3)
        self.assertEqual(receipt.answered_questions, 2)
        self.assertEqual(receipt.completion_percentage, 67)

    def test_zero_total_needs_manual_review(self):
        empty = Exam.objects.create(title='Empty', course=self.course)
        receipt = self.coordinator.submit(empty.pk, 'learner', {})
        self.assertEqual(receipt.feedback, 'Exam completed. Manual review required.')
        self.assertFalse(receipt.passed)
        self.assertEqual(receipt.completion_percentage, 0)

    def test_unknown_exam_and_learner(self):
        with self.assertRaises(ExamNotFound):
            self.coordinator.submit(987654, 'learner', {})
        with self.assertRaises(LearnerNotFound):
            self.coordinator.submit(self.exam.pk, 'ghost', {})

    def _occupy(self, result_id, username):
        other_user = make_user(username)
        other_exam = Exam.objects.create(title=f'Other {username}', course=self.course)
        Result.objects.create(id=result_id, exam=other_exam, user=other_user, attempted_at=timezone.now())

    def test_id_collision_retries_with_alternate_id(self):
        self._occupy(primary_result_id(self.millis(), self.learner.pk, self.exam.pk), 'blocker')
        receipt = self.coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        self.assertEqual(receipt.result_id, alternate_result_id(self.millis(), self.learner.pk, self.exam.pk))

    def test_second_collision_is_persistence_failure(self):
        self._occupy(primary_result_id(self.millis(), self.learner.pk, self.exam.pk), 'blocker1')
        self._occupy(alternate_result_id(self.millis(), self.learner.pk, self.exam.pk), 'blocker2')
        with self.assertRaises(PersistenceFailure):
            self.coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        self.assertFalse(Result.objects.filter(user=self.learner, exam=self.exam).exists())

    def test_storage_rejects_second_result_for_same_pair(self):
        Result.objects.create(id=1, exam=self.exam, user=self.learner, attempted_at=timezone.now())
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Result.objects.create(id=2, exam=self.exam, user=self.learner, attempted_at=timezone.now())

    def test_concurrent_insert_reported_as_duplicate(self):
        """A result stored between the duplicate check and the insert is a duplicate, not a failure."""
        Result.objects.create(id=1, exam=self.exam, user=self.learner, attempted_at=timezone.now())
        with self.assertRaises(DuplicateSubmission):
            self.coordinator._persist(
                self.exam, self.learner,
                score=Decimal('6.00'),
                passed=True,
                time_taken=0,
                attempted_at=self.FIXED_NOW,
                feedback='',
                answers={}
            )
        self.assertEqual(Result.objects.filter(user=self.learner, exam=self.exam).count(), 1)

    def test_notifier_runs_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            receipt = self.coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        self.assertEqual(len(self.notified), 1)
        learner, exam, result, answers = self.notified[0]
        self.assertEqual(result.pk, receipt.result_id)

    def test_notifier_failure_does_not_affect_result(self):
        def broken(*args):
            raise RuntimeError('smtp down')

        coordinator = SubmissionCoordinator(notifier=broken)
        with self.captureOnCommitCallbacks(execute=True):
            receipt = coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        self.assertTrue(Result.objects.filter(pk=receipt.result_id).exists())

    @override_settings(EXAM_ENGINE={'RESULT_EMAILS_ENABLED': False})
    def test_notifications_can_be_disabled(self):
        with self.captureOnCommitCallbacks(execute=True):
            self.coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        self.assertEqual(self.notified, [])

    def test_default_notifier_emails_result(self):
        coordinator = SubmissionCoordinator()
        with self.captureOnCommitCallbacks(execute=True):
            coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertIn('Geography Quiz', message.subject)
        self.assertEqual(message.to, ['learner@test.com'])
        self.assertEqual(message.alternatives[0][1], 'text/html')

    def test_result_email_escapes_html(self):
        self.exam.title = 'Maps <b>& Borders</b>'
        self.exam.save()
        coordinator = SubmissionCoordinator()
        with self.captureOnCommitCallbacks(execute=True):
            coordinator.submit(self.exam.pk, 'learner', all_correct(self.exam))
        html = mail.outbox[0].alternatives[0][0]
        self.assertIn('Maps &lt;b&gt;&amp; Borders&lt;/b&gt;', html)
        self.assertNotIn('<b>& Borders</b>', html)

    def test_feedback_tiers(self):
        self.assertIn('Great job', build_feedback(Decimal('8.50'), 10, Decimal('85.00'), True))
        self.assertIn('Good work', build_feedback(Decimal('7.00'), 10, Decimal('70.00'), True))
        self.assertIn('You passed!', build_feedback(Decimal('6.00'), 10, Decimal('60.00'), True))


class ExamApiTests(APITestCase):
    """Tests for the exam catalog and submission endpoints."""

    def setUp(self):
        cache.clear()
        self.learner = make_user('learner')
        self.learner_token = Token.objects.create(user=self.learner)
        self.instructor = make_user('prof', role=UserProfile.Role.INSTRUCTOR)
        self.instructor_token = Token.objects.create(user=self.instructor)

        self.course = Course.objects.create(
            name='Geography', visibility=Course.Visibility.PUBLIC, instructor=self.instructor
        )
        CourseEnrollment.objects.create(course=self.course, student=self.learner)
        self.exam = make_exam(self.course, is_active=True, created_by=self.instructor, **open_window())

        self.private_course = Course.objects.create(name='Closed', allowed_emails=['someone@test.com'])
        self.private_exam = make_exam(self.private_course, title='Closed Quiz', is_active=True, **open_window())

    def as_learner(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {self.learner_token.key}')

    def as_instructor(self):
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {self.instructor_token.key}')

    def submit(self, exam, answers, time_taken=0):
        return self.client.post(
            f'/api/exams/{exam.pk}/submit/',
            {'answers': answers, 'time_taken': time_taken},
            format='json'
        )

    def test_requires_authentication(self):
        response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_learner_lists_only_accessible_exams(self):
        self.as_learner()
        response = self.client.get('/api/exams/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        titles = [entry['title'] for entry in response.data['results']]
        self.assertEqual(titles, ['Geography Quiz'])

        entry = response.data['results'][0]
        self.assertEqual(entry['status'], 'active')
        self.assertFalse(entry['has_submitted'])
        self.assertTrue(entry['actions']['can_start'])
        self.assertEqual(entry['total_marks'], 6)
        self.assertEqual(entry['instructor_name'], 'prof')

    def test_learner_detail_hides_answer_key(self):
        self.as_learner()
        response = self.client.get(f'/api/exams/{self.exam.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['questions']), 3)
        self.assertNotIn('correct_options', response.data['questions'][0])
        self.assertNotIn('completed_students', response.data)

    def test_learner_detail_of_inaccessible_exam_is_forbidden(self):
        self.as_learner()
        response = self.client.get(f'/api/exams/{self.private_exam.pk}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(AuditLog.objects.filter(
            user=self.learner, event_type=AuditLog.EventType.ACCESS_DENIED
        ).exists())

    def test_access_check(self):
        self.as_learner()
        response = self.client.get(f'/api/exams/{self.private_exam.pk}/access/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['has_access'])
        self.assertEqual(response.data['reason'], NOT_ALLOWED)
        self.assertEqual(response.data['course_visibility'], 'PRIVATE')

        response = self.client.get(f'/api/exams/{self.exam.pk}/access/')
        self.assertTrue(response.data['has_access'])
        self.assertFalse(response.data['has_submitted'])

    def test_submit_and_duplicate(self):
        self.as_learner()
        response = self.submit(self.exam, all_correct(self.exam), 300)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['score'], 6.0)
        self.assertEqual(response.data['percentage'], 100.0)
        self.assertEqual(response.data['answered_questions'], 3)
        self.assertEqual(response.data['completion_percentage'], 100)
        self.assertTrue(Result.objects.filter(pk=response.data['result_id']).exists())
        self.assertTrue(AuditLog.objects.filter(event_type=AuditLog.EventType.EXAM_SUBMIT).exists())

        response = self.submit(self.exam, all_correct(self.exam))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'duplicate_submission')
        self.assertEqual(Result.objects.filter(user=self.learner, exam=self.exam).count(), 1)

    def test_submitted_exam_listed_as_completed(self):
        self.as_learner()
        self.submit(self.exam, all_correct(self.exam))
        entry = self.client.get('/api/exams/').data['results'][0]
        self.assertEqual(entry['status'], 'completed')
        self.assertTrue(entry['has_submitted'])
        self.assertFalse(entry['actions']['can_start'])
        self.assertEqual(entry['actions']['primary_action']['type'], 'submitted')

    def test_submit_without_access_is_forbidden(self):
        self.as_learner()
        response = self.submit(self.private_exam, {})
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(Result.objects.exists())

    def test_submit_unknown_exam(self):
        self.as_learner()
        response = self.client.post('/api/exams/999999/submit/', {'answers': {}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'exam_not_found')

    def test_submit_rejects_negative_time(self):
        self.as_learner()
        response = self.submit(self.exam, {}, time_taken=-5)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_results_listing(self):
        self.as_learner()
        self.submit(self.exam, all_correct(self.exam), 125)

        response = self.client.get('/api/results/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['results']), 1)
        result = response.data['results'][0]
        self.assertEqual(result['grade'], 'A+')
        self.assertEqual(result['percentage'], 100.0)
        self.assertEqual(result['time_taken_formatted'], '2:05')
        self.assertEqual(result['exam']['title'], 'Geography Quiz')

        outsider = make_user('outsider')
        outsider_token = Token.objects.create(user=outsider)
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {outsider_token.key}')
        self.assertEqual(len(self.client.get('/api/results/').data['results']), 0)

    def test_instructor_sees_completed_students(self):
        self.as_learner()
        self.submit(self.exam, all_correct(self.exam))

        self.as_instructor()
        response = self.client.get(f'/api/exams/{self.exam.pk}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('correct_options', response.data['questions'][0])
        students = response.data['completed_students']
        self.assertEqual(len(students), 1)
        self.assertEqual(students[0]['username'], 'learner')
        self.assertEqual(students[0]['percentage'], 100.0)

        response = self.client.get('/api/results/', {'exam': self.exam.pk})
        self.assertEqual(len(response.data['results']), 1)


class ExamManagementApiTests(APITestCase):
    """Tests for exam creation, updates and publishing."""

    def setUp(self):
        cache.clear()
        self.instructor = make_user('prof', role=UserProfile.Role.INSTRUCTOR)
        self.course = Course.objects.create(name='Geography', instructor=self.instructor)
        self.client.credentials(
            HTTP_AUTHORIZATION=f'Token {Token.objects.create(user=self.instructor).key}'
        )

    def payload(self, **overrides):
        data = {
            'title': 'Capitals',
            'course': self.course.pk,
            'start_date': '2030-01-15',
            'start_time': '09:00',
            'end_date': '2030-01-15',
            'end_time': '18:00',
            'duration': 30,
            'questions': [
                {
                    'question_type': 'mcq',
                    'text': 'Capital of France?',
                    'marks': 2,
                    'options': [{'text': 'Paris'}, {'text': 'Rome'}],
                    'correct_options': [0]
                },
                {'question_type': 'text', 'text': 'Describe Lyon.'}
            ]
        }
        data.update(overrides)
        return data

    def test_create_exam_with_questions(self):
        response = self.client.post('/api/exams/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        exam = Exam.objects.get(title='Capitals')
        self.assertEqual(exam.created_by, self.instructor)
        self.assertEqual(exam.get_question_count(), 2)
        self.assertEqual(exam.get_total_marks(), 3)
        self.assertEqual(response.data['status'], 'upcoming')

    def test_malformed_window_rejected(self):
        response = self.client.post('/api/exams/', self.payload(start_date='2030-13-45'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('start_date', response.data)

        response = self.client.post('/api/exams/', self.payload(end_time='6pm'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_window_bounds_compared_as_times(self):
        response = self.client.post(
            '/api/exams/', self.payload(start_time='9:00', end_time='10:00'), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.post(
            '/api/exams/', self.payload(title='Backwards', start_time='10:00', end_time='9:00'), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('non_field_errors', response.data)

    def test_learner_cannot_create_exam(self):
        learner = make_user('learner')
        self.client.credentials(HTTP_AUTHORIZATION=f'Token {Token.objects.create(user=learner).key}')
        response = self.client.post('/api/exams/', self.payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_exam_locked_once_submitted(self):
        exam = make_exam(self.course, created_by=self.instructor)
        learner = make_user('learner')
        Result.objects.create(id=42, exam=exam, user=learner, attempted_at=timezone.now())

        response = self.client.patch(f'/api/exams/{exam.pk}/', {'title': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        exam.refresh_from_db()
        self.assertEqual(exam.title, 'Geography Quiz')

    def test_publish_and_unpublish(self):
        exam = make_exam(self.course, created_by=self.instructor)
        response = self.client.post(f'/api/exams/{exam.pk}/publish/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        exam.refresh_from_db()
        self.assertTrue(exam.is_active)

        self.client.post(f'/api/exams/{exam.pk}/unpublish/')
        exam.refresh_from_db()
        self.assertFalse(exam.is_active)

    def test_publish_requires_questions(self):
        exam = Exam.objects.create(title='Empty', course=self.course, created_by=self.instructor)
        response = self.client.post(f'/api/exams/{exam.pk}/publish/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class SetupDemoCommandTests(TestCase):
    def test_creates_demo_data_idempotently(self):
        call_command('setup_demo', stdout=StringIO())
        call_command('setup_demo', stdout=StringIO())

        exam = Exam.objects.get(title='Python Basics Quiz')
        self.assertEqual(exam.get_question_count(), 3)
        self.assertEqual(exam.get_total_marks(), 7)
        student = User.objects.get(username='student')
        self.assertTrue(AccessGate.may_access(exam, student))
        self.assertEqual(User.objects.get(username='instructor').profile.role, UserProfile.Role.INSTRUCTOR)
