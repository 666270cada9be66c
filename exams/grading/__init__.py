from .base import (
    PASS_THRESHOLD, QuestionAward, ScoreCard, is_passing, letter_grade, percentage_of, round_half_up
)
from .scoring import ScoringEngine, normalize_answers

__all__ = [
    'PASS_THRESHOLD', 'QuestionAward', 'ScoreCard', 'ScoringEngine',
    'is_passing', 'letter_grade', 'normalize_answers', 'percentage_of', 'round_half_up',
]
