from .status import ExamPhase, classify
from .window import wall_clock, exam_start, exam_end

__all__ = ['ExamPhase', 'classify', 'wall_clock', 'exam_start', 'exam_end']
