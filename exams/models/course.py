from django.db import models
from django.contrib.auth.models import User


class Course(models.Model):
    class Visibility(models.TextChoices):
        PUBLIC = 'PUBLIC', 'Public'
        PRIVATE = 'PRIVATE', 'Private'

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    instructor = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='taught_courses'
    )
    visibility = models.CharField(
        max_length=10,
        choices=Visibility.choices,
        default=Visibility.PRIVATE,
        db_index=True
    )
    # Learners of a private course are listed here by email.
    allowed_emails = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_visibility_display()})"

    def allows_email(self, email):
        if not email:
            return False
        wanted = email.strip().lower()
        return any(
            isinstance(allowed, str) and allowed.strip().lower() == wanted
            for allowed in self.allowed_emails or []
        )
