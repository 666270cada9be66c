from django.db import models
from django.contrib.auth.models import User


class Exam(models.Model):
    title = models.CharField(max_length=300)
    description = models.TextField(blank=True)
    instructions = models.TextField(blank=True)
    course = models.ForeignKey(
        'Course',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='exams',
        db_index=True
    )

    # Scheduling window, stored as wall-clock strings (YYYY-MM-DD / HH:MM).
    start_date = models.CharField(max_length=10, blank=True)
    start_time = models.CharField(max_length=8, blank=True)
    end_date = models.CharField(max_length=10, blank=True)
    end_time = models.CharField(max_length=8, blank=True)

    duration = models.PositiveIntegerField(default=60, help_text="Duration in minutes")
    total_marks = models.PositiveIntegerField(
        default=0,
        help_text="Leave at 0 to derive the total from question marks"
    )
    is_active = models.BooleanField(default=False, db_index=True)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_exams'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['course', 'is_active'], name='exam_course_active_idx'),
            models.Index(fields=['created_at'], name='exam_created_idx'),
        ]

    def __str__(self):
        return self.title

    def get_total_marks(self):
        """
        Effective total marks: the stored total when set, otherwise the sum of
        question weights. Every score, percentage and display goes through here.
        """
        if self.total_marks and self.total_marks > 0:
            return self.total_marks
        return sum(question.weight for question in self.questions.all())

    def get_question_count(self):
        return len(self.questions.all())

    def has_results(self):
        return self.results.exists()
