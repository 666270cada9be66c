"""
Notification Service for result emails sent through Django's mail API.
"""
from django.core.mail import EmailMultiAlternatives
from django.conf import settings
from django.utils.html import escape
import logging

logger = logging.getLogger(__name__)


class NotificationService:
    FROM_EMAIL = getattr(settings, 'DEFAULT_FROM_EMAIL', 'noreply@examport.local')

    @classmethod
    def _send_email(cls, subject, message, recipient_list, html_message):
        """Send a plain-text email with an HTML alternative."""
        try:
            email = EmailMultiAlternatives(
                subject=subject,
                body=message,
                from_email=cls.FROM_EMAIL,
                to=recipient_list
            )
            email.attach_alternative(html_message, "text/html")
            email.send(fail_silently=False)
            logger.info(f"Email sent to {recipient_list}: {subject}")
            return True
        except Exception as e:
            logger.error(f"Email send failed to {recipient_list}: {e}")
            return False

    @classmethod
    def send_exam_result_notification(cls, learner, exam, result, answers=None):
        """Send the graded result of a submission to the learner."""
        if not learner.email:
            logger.info(f"Learner {learner.username} has no email, skipping result notification")
            return False

        from exams.grading import percentage_of

        total_marks = exam.get_total_marks()
        percentage = percentage_of(result.score, total_marks)
        answered = len([value for value in (answers or {}).values() if str(value).strip()])
        name = learner.get_full_name() or learner.username
        status_text = 'PASSED' if result.passed else 'NOT PASSED'
        course_name = exam.course.name if exam.course else 'No Course'

        subject = f"Exam Result: {exam.title}"
        message = f"""
Hello {name},

Your submission for "{exam.title}" has been graded.

Course: {course_name}
Score: {result.score} / {total_marks} ({percentage}%)
Status: {status_text}
Questions answered: {answered} of {exam.get_question_count()}
Time taken: {result.time_taken_display}

{result.feedback}

Best regards,
ExamPort Team
"""

        status_color = '#16A34A' if result.passed else '#DC2626'
        safe_title = escape(exam.title)
        safe_name = escape(name)
        safe_course = escape(course_name)
        safe_feedback = escape(result.feedback)
        html_message = f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #4F46E5; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
        .content {{ background: #f9fafb; padding: 30px; border-radius: 0 0 8px 8px; }}
        .score {{ font-size: 32px; font-weight: bold; text-align: center; padding: 20px;
                  background: white; border-radius: 8px; margin: 20px 0; }}
        .status {{ color: {status_color}; font-weight: bold; }}
        .footer {{ text-align: center; color: #666; font-size: 12px; margin-top: 20px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>{safe_title}</h1>
        </div>
        <div class="content">
            <p>Hello {safe_name},</p>
            <p>Your submission has been graded.</p>
            <div class="score">{result.score} / {total_marks} ({percentage}%)</div>
            <p class="status">{status_text}</p>
            <p>Course: {safe_course}<br>
               Questions answered: {answered} of {exam.get_question_count()}<br>
               Time taken: {result.time_taken_display}</p>
            <p>{safe_feedback}</p>
        </div>
        <div class="footer">
            <p>ExamPort</p>
        </div>
    </div>
</body>
</html>
"""
        return cls._send_email(subject, message, [learner.email], html_message=html_message)
