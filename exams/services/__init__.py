from .access import AccessDecision, AccessGate
from .catalog import ExamCatalog
from .notification import NotificationService
from .submission import SubmissionCoordinator, SubmissionReceipt

__all__ = [
    'AccessDecision', 'AccessGate', 'ExamCatalog', 'NotificationService',
    'SubmissionCoordinator', 'SubmissionReceipt'
]
