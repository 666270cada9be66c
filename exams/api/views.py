"""
API Views for the ExamPort exam engine.
Provides endpoints for the exam catalog, access checks, submission and results.
"""
import logging

from django.db.models import Q
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import (
    extend_schema, extend_schema_view, OpenApiParameter,
    OpenApiExample, OpenApiResponse
)

from exams.exceptions import DuplicateSubmission, ExamNotFound
from exams.models import Exam, Result, AuditLog
from exams.permissions import (
    IsInstructorOrAdmin, IsExamOwnerOrAdmin, IsResultOwnerOrInstructor,
    is_privileged, request_is_admin
)
from exams.throttling import SubmissionRateThrottle
from exams.services import AccessGate, SubmissionCoordinator
from .serializers import (
    ExamListSerializer, ExamDetailSerializer, ExamWriteSerializer,
    SubmitExamSerializer, SubmissionReceiptSerializer, AccessCheckSerializer,
    ResultSerializer, ResultDetailSerializer
)

logger = logging.getLogger(__name__)


def _submitted_exam_ids(user):
    return set(Result.objects.filter(user=user).values_list('exam_id', flat=True))


# =============================================================================
# EXAMS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List exams",
        description="""
Returns a paginated list of exams enriched with display strings, a countdown
to the due date, the lifecycle `status` and the available `actions`.

**Learners** see exams of courses they may access (private allow-list or
public enrollment), with `has_submitted` and learner-specific actions.
**Instructors** see exams of the courses they teach. **Admins** see all exams.
""",
        examples=[
            OpenApiExample(
                'Response Example',
                value={
                    "count": 1,
                    "results": [{
                        "id": 1,
                        "title": "Python Basics Quiz",
                        "course_name": "Introduction to Python",
                        "questions_display": "3 questions",
                        "marks_display": "6 marks",
                        "status": "active",
                        "countdown_display": "2h 15m",
                        "actions": {
                            "can_start": True,
                            "primary_action": {"text": "Start Exam", "type": "start", "style": "primary", "enabled": True}
                        }
                    }]
                },
                response_only=True
            )
        ]
    ),
    retrieve=extend_schema(
        summary="Get exam details",
        description="Exam details with questions. The answer key is hidden from learners; "
                    "instructors also receive `completed_students`."
    ),
    create=extend_schema(
        summary="Create exam",
        description="Create an exam with nested questions and options. **Requires Instructor or Admin role.**",
        examples=[
            OpenApiExample(
                'Request Example',
                value={
                    "title": "Python Basics Quiz",
                    "course": 1,
                    "start_date": "2026-01-15",
                    "start_time": "09:00",
                    "end_date": "2026-01-15",
                    "end_time": "18:00",
                    "duration": 30,
                    "total_marks": 0,
                    "questions": [
                        {
                            "question_type": "mcq",
                            "text": "What is 2 + 2?",
                            "marks": 2,
                            "options": [{"text": "3"}, {"text": "4"}],
                            "correct_options": [1]
                        }
                    ]
                },
                request_only=True
            )
        ]
    ),
    update=extend_schema(
        summary="Update exam",
        description="Update an exam. Rejected once any learner has submitted it."
    ),
    partial_update=extend_schema(
        summary="Partially update exam",
        description="Update selected exam fields. Rejected once any learner has submitted it."
    ),
    destroy=extend_schema(
        summary="Delete exam",
        description="Delete an exam with its questions and results. **Requires Instructor or Admin role.**"
    )
)
@extend_schema(tags=['Exams'])
class ExamViewSet(viewsets.ModelViewSet):
    """
    ViewSet for the exam catalog.

    Exams belong to a course, carry a wall-clock scheduling window and are
    attempted at most once per learner.
    """
    permission_classes = [IsAuthenticated, IsInstructorOrAdmin, IsExamOwnerOrAdmin]
    filterset_fields = ['course', 'is_active']
    search_fields = ['title', 'description']
    ordering_fields = ['title', 'created_at', 'duration']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Exam.objects.none()

        queryset = Exam.objects.select_related(
            'course', 'course__instructor', 'course__instructor__profile', 'created_by'
        ).prefetch_related('questions__options').order_by('-created_at')

        user = self.request.user
        if request_is_admin(user):
            return queryset
        if is_privileged(user):
            return queryset.filter(Q(course__instructor=user) | Q(created_by=user))
        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return ExamListSerializer
        if self.action in ['create', 'update', 'partial_update']:
            return ExamWriteSerializer
        return ExamDetailSerializer

    def get_serializer_context(self):
        context = super().get_serializer_context()
        user = self.request.user
        if user.is_authenticated and not is_privileged(user):
            context['submitted_exam_ids'] = _submitted_exam_ids(user)
        return context

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        if not is_privileged(request.user):
            queryset = AccessGate.visible_exams(queryset, request.user)

        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        return Response(self.get_serializer(queryset, many=True).data)

    def retrieve(self, request, *args, **kwargs):
        exam = self.get_object()
        if not is_privileged(request.user):
            self._enforce_access(request, exam)
        return Response(self.get_serializer(exam).data)

    def perform_create(self, serializer):
        exam = serializer.save(created_by=self.request.user)
        logger.info(f"Exam {exam.pk} '{exam.title}' created by {self.request.user.username}")

    def _load_exam(self, pk):
        try:
            return Exam.objects.select_related('course').get(pk=pk)
        except (Exam.DoesNotExist, ValueError):
            raise ExamNotFound()

    def _enforce_access(self, request, exam):
        decision = AccessGate.check(exam, request.user)
        if not decision:
            AuditLog.log(
                event_type=AuditLog.EventType.ACCESS_DENIED,
                description=f"Access denied: {exam.title} ({decision.reason})",
                request=request,
                metadata={'exam_id': exam.pk, 'reason': decision.reason}
            )
            raise PermissionDenied(decision.reason)
        return decision

    @extend_schema(
        summary="Check exam access",
        description="Whether the current user may see and attempt the exam, and why not.",
        responses={200: AccessCheckSerializer, 404: OpenApiResponse(description="Exam not found")},
        examples=[
            OpenApiExample(
                'Denied',
                value={
                    "has_access": False,
                    "reason": "You are not enrolled in this course",
                    "has_submitted": False,
                    "exam_title": "Python Basics Quiz",
                    "course_id": 1,
                    "course_name": "Introduction to Python",
                    "course_visibility": "PUBLIC"
                },
                response_only=True
            )
        ]
    )
    @action(detail=True, methods=['get'], permission_classes=[IsAuthenticated])
    def access(self, request, pk=None):
        exam = self._load_exam(pk)
        decision = AccessGate.check(exam, request.user)
        course = exam.course
        return Response({
            'has_access': decision.has_access,
            'reason': decision.reason,
            'has_submitted': Result.objects.filter(user=request.user, exam=exam).exists(),
            'exam_title': exam.title,
            'course_id': course.pk if course else None,
            'course_name': course.name if course else None,
            'course_visibility': course.visibility if course else None,
        })

    @extend_schema(
        summary="Submit exam answers",
        description="""
Grade and store the current user's single attempt at an exam.

**Process:**
1. Checks course access
2. Rejects a second submission (409)
3. Scores answers (single choice, partial-credit multi choice, free text)
4. Stores the result and emails it to the learner

Answers map question ids to strings. Multi-choice answers are comma-separated option texts.
""",
        request=SubmitExamSerializer,
        responses={
            200: SubmissionReceiptSerializer,
            403: OpenApiResponse(description="No access to the exam's course"),
            404: OpenApiResponse(description="Exam or user not found"),
            409: OpenApiResponse(description="Exam already submitted"),
            500: OpenApiResponse(description="Result could not be stored")
        },
        examples=[
            OpenApiExample(
                'Request Example',
                value={"answers": {"1": "4", "2": "Red, Blue", "3": "A decorator wraps a function."}, "time_taken": 754},
                request_only=True
            )
        ]
    )
    @action(detail=True, methods=['post'], permission_classes=[IsAuthenticated], throttle_classes=[SubmissionRateThrottle])
    def submit(self, request, pk=None):
        serializer = SubmitExamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        exam = self._load_exam(pk)
        self._enforce_access(request, exam)

        try:
            receipt = SubmissionCoordinator().submit(
                exam.pk,
                request.user.username,
                serializer.validated_data['answers'],
                serializer.validated_data['time_taken']
            )
        except DuplicateSubmission:
            AuditLog.log(
                event_type=AuditLog.EventType.SUBMISSION_REJECTED,
                description=f"Duplicate submission: {exam.title}",
                request=request,
                metadata={'exam_id': exam.pk}
            )
            raise

        AuditLog.log(
            event_type=AuditLog.EventType.EXAM_SUBMIT,
            description=f"Submitted: {exam.title}",
            request=request,
            metadata={
                'exam_id': exam.pk,
                'result_id': receipt.result_id,
                'score': float(receipt.score),
                'passed': receipt.passed
            }
        )

        return Response({
            'success': True,
            'message': 'Exam submitted successfully',
            **receipt.as_dict()
        })

    @extend_schema(
        summary="Publish exam",
        description="Activate an exam for learners. Requires at least one question.",
        request=None,
        responses={
            200: OpenApiResponse(
                description="Exam published successfully",
                examples=[OpenApiExample('Success', value={"detail": "Exam published."})]
            ),
            400: OpenApiResponse(description="Cannot publish exam with no questions"),
            403: OpenApiResponse(description="Permission denied")
        }
    )
    @action(detail=True, methods=['post'])
    def publish(self, request, pk=None):
        exam = self.get_object()
        if exam.get_question_count() == 0:
            return Response({"detail": "Cannot publish exam with no questions."}, status=status.HTTP_400_BAD_REQUEST)

        exam.is_active = True
        exam.save(update_fields=['is_active', 'updated_at'])
        logger.info(f"Exam {exam.pk} published by {request.user.username}")
        return Response({"detail": "Exam published."})

    @extend_schema(
        summary="Unpublish exam",
        description="Deactivate an exam so learners can no longer start it.",
        request=None,
        responses={200: OpenApiResponse(description="Exam unpublished")}
    )
    @action(detail=True, methods=['post'])
    def unpublish(self, request, pk=None):
        exam = self.get_object()
        exam.is_active = False
        exam.save(update_fields=['is_active', 'updated_at'])
        logger.info(f"Exam {exam.pk} unpublished by {request.user.username}")
        return Response({"detail": "Exam unpublished."})


# =============================================================================
# RESULTS
# =============================================================================

@extend_schema_view(
    list=extend_schema(
        summary="List results",
        description="""
List graded exam results.

**Learners** see only their own results.
**Instructors** also see results for exams of the courses they teach.
""",
        parameters=[
            OpenApiParameter(name='exam', type=int, location='query', description='Filter by exam ID')
        ]
    ),
    retrieve=extend_schema(
        summary="Get result details",
        description="Result with exam and course info, percentage of the effective total, "
                    "letter grade and the submitted answers."
    )
)
@extend_schema(tags=['Results'])
class ResultViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Result.objects.none()
    permission_classes = [IsAuthenticated, IsResultOwnerOrInstructor]
    filterset_fields = ['exam', 'passed']
    ordering_fields = ['attempted_at', 'score']

    def get_queryset(self):
        if getattr(self, 'swagger_fake_view', False):
            return Result.objects.none()

        queryset = Result.objects.select_related(
            'exam', 'exam__course', 'user', 'user__profile'
        ).prefetch_related('exam__questions').order_by('-attempted_at')

        user = self.request.user
        if request_is_admin(user):
            return queryset
        if is_privileged(user):
            return queryset.filter(
                Q(user=user) | Q(exam__course__instructor=user) | Q(exam__created_by=user)
            )
        return queryset.filter(user=user)

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ResultDetailSerializer
        return ResultSerializer
