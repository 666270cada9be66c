from django.db import models
from django.contrib.auth.models import User


class Result(models.Model):
    # Synthesized by the submission coordinator, never auto-incremented.
    id = models.BigIntegerField(primary_key=True)

    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='results',
        db_index=True
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='exam_results',
        db_index=True
    )

    score = models.DecimalField(max_digits=9, decimal_places=2, default=0)
    passed = models.BooleanField(default=False)
    time_taken = models.PositiveIntegerField(default=0, help_text="Seconds")
    attempted_at = models.DateTimeField()
    feedback = models.TextField(blank=True)
    answers = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-attempted_at']
        indexes = [
            models.Index(fields=['exam', 'score'], name='result_exam_score_idx'),
            models.Index(fields=['user', 'attempted_at'], name='result_user_attempted_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'exam'],
                name='unique_result_per_user_exam'
            )
        ]

    def __str__(self):
        return f"{self.user.username} - {self.exam.title} ({self.score})"

    @property
    def time_taken_display(self):
        minutes, seconds = divmod(self.time_taken or 0, 60)
        return f"{minutes}:{seconds:02d}"
