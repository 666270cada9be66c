"""Course enrollment model backing access to public courses."""
from django.db import models
from django.contrib.auth.models import User


class CourseEnrollment(models.Model):
    """Tracks which students are enrolled in which courses."""
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        ENROLLED = 'enrolled', 'Enrolled'
        COMPLETED = 'completed', 'Completed'
        REVOKED = 'revoked', 'Revoked'

    ACTIVE_STATUSES = (Status.ENROLLED, Status.COMPLETED)

    course = models.ForeignKey('Course', on_delete=models.CASCADE, related_name='enrollments')
    student = models.ForeignKey(User, on_delete=models.CASCADE, related_name='course_enrollments')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ENROLLED)
    enrolled_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['course', 'student']
        ordering = ['-enrolled_at']

    def __str__(self):
        return f"{self.student.username} - {self.course.name}"

    @classmethod
    def is_active_enrollment(cls, student, course):
        return cls.objects.filter(
            student=student,
            course=course,
            status__in=cls.ACTIVE_STATUSES
        ).exists()

    @classmethod
    def active_count(cls, course):
        return cls.objects.filter(course=course, status__in=cls.ACTIVE_STATUSES).count()
