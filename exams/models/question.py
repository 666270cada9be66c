from django.db import models


class Question(models.Model):
    class QuestionType(models.TextChoices):
        SINGLE_CHOICE = 'mcq', 'Single Choice'
        MULTI_CHOICE = 'multiple', 'Multiple Choice'
        FREE_TEXT = 'text', 'Free Text'

    DEFAULT_MARKS = 1

    exam = models.ForeignKey(
        'Exam',
        on_delete=models.CASCADE,
        related_name='questions',
        db_index=True
    )
    question_type = models.CharField(
        max_length=10,
        choices=QuestionType.choices,
        default=QuestionType.SINGLE_CHOICE,
        db_index=True
    )
    text = models.TextField()
    marks = models.PositiveIntegerField(null=True, blank=True, default=DEFAULT_MARKS)
    # Positions into the ordered option list.
    correct_options = models.JSONField(default=list, blank=True)
    order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['order', 'id']
        indexes = [
            models.Index(fields=['exam', 'order'], name='question_exam_order_idx'),
        ]

    def __str__(self):
        return f"Q{self.order}: {self.text[:50]}..."

    @property
    def weight(self):
        return self.marks if self.marks is not None else self.DEFAULT_MARKS

    def ordered_options(self):
        return list(self.options.all())

    def correct_option_indices(self):
        """Correct indices that point at an existing option, in stored order."""
        options = self.ordered_options()
        indices = []
        for raw in self.correct_options or []:
            try:
                index = int(raw)
            except (TypeError, ValueError):
                continue
            if 0 <= index < len(options):
                indices.append(index)
        return indices


class Option(models.Model):
    question = models.ForeignKey(
        'Question',
        on_delete=models.CASCADE,
        related_name='options'
    )
    text = models.CharField(max_length=500)
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['position', 'id']

    def __str__(self):
        return f"{self.position}: {self.text}"
