from rest_framework import serializers
from django.contrib.auth.models import User
from django.db import transaction
from drf_spectacular.utils import extend_schema_field
from exams.grading import letter_grade, percentage_of
from exams.models import Course, Exam, Question, Option, Result
from exams.permissions import can_manage_exam, is_privileged, request_is_admin
from exams.scheduling.window import parse_bound, validate_date, validate_time
from exams.services.catalog import ExamCatalog, completed_students


def _viewer_is_privileged(context):
    request = context.get('request')
    return bool(request and request.user.is_authenticated and is_privileged(request.user))


class UserSerializer(serializers.ModelSerializer):
    role = serializers.CharField(source='profile.role', read_only=True)
    full_name = serializers.CharField(source='profile.display_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'full_name', 'role']
        read_only_fields = fields


class CourseSummarySerializer(serializers.ModelSerializer):
    instructor = UserSerializer(read_only=True)

    class Meta:
        model = Course
        fields = ['id', 'name', 'visibility', 'instructor']


class OptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Option
        fields = ['id', 'text', 'position']
        read_only_fields = ['id']


class QuestionSerializer(serializers.ModelSerializer):
    options = OptionSerializer(many=True, required=False)
    correct_options = serializers.ListField(
        child=serializers.IntegerField(min_value=0),
        required=False,
        default=list
    )
    marks = serializers.IntegerField(min_value=0, required=False, allow_null=True)

    class Meta:
        model = Question
        fields = ['id', 'question_type', 'text', 'marks', 'order', 'options', 'correct_options']
        read_only_fields = ['id']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # Learners never see the answer key
        if not _viewer_is_privileged(self.context):
            data.pop('correct_options', None)
        return data

    def validate(self, data):
        question_type = data.get('question_type', Question.QuestionType.SINGLE_CHOICE)
        options = data.get('options') or []
        if question_type != Question.QuestionType.FREE_TEXT and not options:
            raise serializers.ValidationError("Choice questions need at least one option.")
        return data


class ExamListSerializer(serializers.ModelSerializer):
    """Exam catalog entry: stored fields plus computed display, status and actions."""
    course = CourseSummarySerializer(read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'course', 'duration',
            'start_date', 'start_time', 'end_date', 'end_time',
            'is_active', 'created_at'
        ]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        privileged = _viewer_is_privileged(self.context)
        submitted = instance.pk in self.context.get('submitted_exam_ids', set())
        data.update(ExamCatalog.describe(
            instance,
            viewer_is_instructor=privileged,
            has_submitted=submitted,
            now=self.context.get('now')
        ))
        return data


class ExamDetailSerializer(ExamListSerializer):
    questions = QuestionSerializer(many=True, read_only=True)
    created_by = UserSerializer(read_only=True)

    class Meta(ExamListSerializer.Meta):
        fields = ExamListSerializer.Meta.fields + [
            'instructions', 'questions', 'created_by', 'updated_at'
        ]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        if request and request.user.is_authenticated and can_manage_exam(request.user, instance):
            data['completed_students'] = completed_students(instance)
        return data


class ExamWriteSerializer(serializers.ModelSerializer):
    """Create/update an exam together with its questions and options."""
    course = serializers.PrimaryKeyRelatedField(queryset=Course.objects.all())
    questions = QuestionSerializer(many=True, required=False)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'instructions', 'course',
            'start_date', 'start_time', 'end_date', 'end_time',
            'duration', 'total_marks', 'is_active', 'questions'
        ]
        read_only_fields = ['id']

    def _check_format(self, value, validator, expected):
        if not value:
            return value
        try:
            return validator(value)
        except ValueError:
            raise serializers.ValidationError(f"Expected {expected}, got '{value}'.")

    def validate_start_date(self, value):
        return self._check_format(value, validate_date, 'YYYY-MM-DD')

    def validate_end_date(self, value):
        return self._check_format(value, validate_date, 'YYYY-MM-DD')

    def validate_start_time(self, value):
        return self._check_format(value, validate_time, 'HH:MM')

    def validate_end_time(self, value):
        return self._check_format(value, validate_time, 'HH:MM')

    def validate_course(self, course):
        request = self.context.get('request')
        if request and not request_is_admin(request.user) and course.instructor_id != request.user.id:
            raise serializers.ValidationError("You can only create exams for courses you teach.")
        return course

    def validate(self, data):
        if self.instance is not None and self.instance.has_results():
            raise serializers.ValidationError("Exam cannot be modified after learners have submitted it.")

        start = self._bound(data, 'start')
        end = self._bound(data, 'end')
        if start and end and end < start:
            raise serializers.ValidationError("Exam end must not be before its start.")
        return data

    def _bound(self, data, prefix):
        date_value = data.get(f'{prefix}_date', getattr(self.instance, f'{prefix}_date', ''))
        time_value = data.get(f'{prefix}_time', getattr(self.instance, f'{prefix}_time', ''))
        try:
            return parse_bound(date_value, time_value)
        except ValueError:
            # Legacy rows may hold malformed values.
            return None

    @transaction.atomic
    def create(self, validated_data):
        questions = validated_data.pop('questions', [])
        exam = Exam.objects.create(**validated_data)
        self._create_questions(exam, questions)
        return exam

    @transaction.atomic
    def update(self, instance, validated_data):
        questions = validated_data.pop('questions', None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()

        if questions is not None:
            instance.questions.all().delete()
            self._create_questions(instance, questions)
        return instance

    def _create_questions(self, exam, questions):
        for position, question_data in enumerate(questions):
            options = question_data.pop('options', [])
            question_data.setdefault('order', position)
            question = Question.objects.create(exam=exam, **question_data)
            Option.objects.bulk_create([
                Option(question=question, text=option['text'], position=option.get('position', index))
                for index, option in enumerate(options)
            ])

    def to_representation(self, instance):
        instance = Exam.objects.select_related('course', 'created_by').prefetch_related(
            'questions__options'
        ).get(pk=instance.pk)
        return ExamDetailSerializer(instance, context=self.context).data


class SubmitExamSerializer(serializers.Serializer):
    answers = serializers.DictField(
        child=serializers.CharField(allow_blank=True, trim_whitespace=False),
        default=dict,
        help_text="Question id -> answer. Multi-choice answers are comma-separated option texts."
    )
    time_taken = serializers.IntegerField(min_value=0, default=0, help_text="Seconds")


class SubmissionReceiptSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    result_id = serializers.IntegerField()
    exam_id = serializers.IntegerField()
    exam_title = serializers.CharField()
    score = serializers.FloatField()
    total_marks = serializers.IntegerField()
    percentage = serializers.FloatField()
    passed = serializers.BooleanField()
    total_questions = serializers.IntegerField()
    answered_questions = serializers.IntegerField()
    completion_percentage = serializers.IntegerField()
    time_taken = serializers.IntegerField()
    feedback = serializers.CharField()
    submitted_at = serializers.DateTimeField()


class AccessCheckSerializer(serializers.Serializer):
    has_access = serializers.BooleanField()
    reason = serializers.CharField(allow_blank=True)
    has_submitted = serializers.BooleanField()
    exam_title = serializers.CharField()
    course_id = serializers.IntegerField(allow_null=True)
    course_name = serializers.CharField(allow_null=True)
    course_visibility = serializers.CharField(allow_null=True)


class ResultSerializer(serializers.ModelSerializer):
    exam = serializers.SerializerMethodField()
    user = UserSerializer(read_only=True)
    score = serializers.DecimalField(max_digits=9, decimal_places=2, coerce_to_string=False, read_only=True)
    total_marks = serializers.SerializerMethodField()
    percentage = serializers.SerializerMethodField()
    grade = serializers.SerializerMethodField()
    time_taken_formatted = serializers.CharField(source='time_taken_display', read_only=True)

    class Meta:
        model = Result
        fields = [
            'id', 'exam', 'user', 'score', 'total_marks', 'percentage', 'grade',
            'passed', 'time_taken', 'time_taken_formatted', 'attempted_at', 'feedback'
        ]

    @extend_schema_field(serializers.DictField())
    def get_exam(self, obj) -> dict:
        exam = obj.exam
        course = exam.course
        return {
            'id': exam.pk,
            'title': exam.title,
            'description': exam.description,
            'total_marks': exam.get_total_marks(),
            'duration': exam.duration,
            'course': {'id': course.pk, 'name': course.name} if course else None,
        }

    def get_total_marks(self, obj) -> int:
        return obj.exam.get_total_marks()

    def get_percentage(self, obj) -> float:
        return float(percentage_of(obj.score, obj.exam.get_total_marks()))

    def get_grade(self, obj) -> str:
        return letter_grade(percentage_of(obj.score, obj.exam.get_total_marks()))


class ResultDetailSerializer(ResultSerializer):
    class Meta(ResultSerializer.Meta):
        fields = ResultSerializer.Meta.fields + ['answers']
