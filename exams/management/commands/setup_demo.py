"""
Management command to set up demo data for ExamPort.
Creates demo users, a public course with an enrolled student, and an exam
covering every question type.
"""
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.contrib.auth.models import User
from django.db import transaction
from rest_framework.authtoken.models import Token
from exams.models import Course, CourseEnrollment, Exam, Question, Option, UserProfile
from exams.scheduling import wall_clock
from exams.scheduling.window import DATE_FORMAT, TIME_FORMAT

DEMO_USERS = (
    ('student', 'student123', UserProfile.Role.STUDENT, {'first_name': 'Test', 'last_name': 'Student'}),
    ('instructor', 'instructor123', UserProfile.Role.INSTRUCTOR, {'first_name': 'Test', 'last_name': 'Instructor'}),
    ('admin', 'admin123', UserProfile.Role.ADMIN, {'is_staff': True, 'is_superuser': True}),
)


class Command(BaseCommand):
    help = 'Set up demo data for testing'

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE('\nSetting up ExamPort demo data...\n'))

        users = {}
        tokens = {}
        for username, password, role, extra in DEMO_USERS:
            user, created = User.objects.get_or_create(
                username=username,
                defaults={'email': f'{username}@example.com', 'is_active': True, **extra}
            )
            if created:
                user.set_password(password)
                user.save()
                user.profile.role = role
                user.profile.save()
                self.stdout.write(self.style.SUCCESS(f'Created {role.label}: {username} / {password}'))
            else:
                self.stdout.write(f'  User {username} already exists')
            users[role] = user
            tokens[role], _ = Token.objects.get_or_create(user=user)

        instructor = users[UserProfile.Role.INSTRUCTOR]
        student = users[UserProfile.Role.STUDENT]

        course, _ = Course.objects.get_or_create(
            name='Introduction to Python',
            defaults={
                'description': 'Learn Python programming fundamentals',
                'instructor': instructor,
                'visibility': Course.Visibility.PUBLIC
            }
        )
        CourseEnrollment.objects.get_or_create(course=course, student=student)
        self.stdout.write(self.style.SUCCESS(f'Course: {course} with {student.username} enrolled'))

        now = wall_clock()
        end = now + timedelta(days=7)
        exam, created = Exam.objects.get_or_create(
            title='Python Basics Quiz',
            course=course,
            defaults={
                'description': 'Test your Python knowledge with this quiz',
                'instructions': 'Answer every question. You have one attempt.',
                'start_date': now.strftime(DATE_FORMAT),
                'start_time': now.strftime(TIME_FORMAT),
                'end_date': end.strftime(DATE_FORMAT),
                'end_time': end.strftime(TIME_FORMAT),
                'duration': 30,
                'is_active': True,
                'created_by': instructor
            }
        )

        if created:
            self._add_question(
                exam, Question.QuestionType.SINGLE_CHOICE,
                'What is the output of print(type([]))?', 2, 1,
                ["<class 'list'>", "<class 'tuple'>", "<class 'dict'>", "<class 'set'>"], [0]
            )
            self._add_question(
                exam, Question.QuestionType.MULTI_CHOICE,
                'Which of these types are mutable?', 2, 2,
                ['list', 'tuple', 'dict', 'str'], [0, 2]
            )
            self._add_question(
                exam, Question.QuestionType.FREE_TEXT,
                'What is a Python decorator? Explain briefly.', 3, 3,
                [], []
            )
            self.stdout.write(self.style.SUCCESS(
                f'Exam: {exam.title} with {exam.get_question_count()} questions, '
                f'{exam.get_total_marks()} marks'
            ))
        else:
            self.stdout.write(f'  Exam already exists: {exam.title}')

        self.stdout.write(self.style.SUCCESS('\n' + '=' * 60))
        self.stdout.write(self.style.SUCCESS('Demo Setup Complete!'))
        self.stdout.write(self.style.SUCCESS('=' * 60))

        self.stdout.write('\nDemo Accounts:')
        for username, password, role, _ in DEMO_USERS:
            self.stdout.write(f'  {role.label:<12} {username:<12} {password}')

        self.stdout.write('\nAPI Tokens:')
        for role, token in tokens.items():
            self.stdout.write(f'  {role.label:<12} {token.key}')

        self.stdout.write('\nAPI Documentation:')
        self.stdout.write('  Swagger UI: http://localhost:8000/api/docs/')
        self.stdout.write('  ReDoc:      http://localhost:8000/api/redoc/')

        student_token = tokens[UserProfile.Role.STUDENT]
        self.stdout.write('\nTest API:')
        self.stdout.write(f'  curl -H "Authorization: Token {student_token.key}" http://localhost:8000/api/exams/')
        self.stdout.write('')

    def _add_question(self, exam, question_type, text, marks, order, options, correct):
        question = Question.objects.create(
            exam=exam,
            question_type=question_type,
            text=text,
            marks=marks,
            order=order,
            correct_options=correct
        )
        Option.objects.bulk_create([
            Option(question=question, text=option, position=position)
            for position, option in enumerate(options)
        ])
        return question
