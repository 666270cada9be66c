from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List

# Fixed pass mark: a score of at least 60% of the effective total passes.
PASS_THRESHOLD = Decimal('0.60')

TWO_PLACES = Decimal('0.01')


def round_half_up(value, places: Decimal = TWO_PLACES) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(places, rounding=ROUND_HALF_UP)


def is_passing(raw_score, total_marks) -> bool:
    if not total_marks or total_marks <= 0:
        return False
    return Decimal(str(raw_score)) / Decimal(str(total_marks)) >= PASS_THRESHOLD


def percentage_of(score, total_marks, places: Decimal = TWO_PLACES) -> Decimal:
    if not total_marks or total_marks <= 0:
        return round_half_up(Decimal('0'), places)
    return round_half_up(Decimal(str(score)) / Decimal(str(total_marks)) * 100, places)


@dataclass
class QuestionAward:
    question_id: int
    question_type: str
    awarded: Decimal
    weight: int


@dataclass
class ScoreCard:
    raw_score: Decimal
    total_marks: int
    passed: bool
    awards: List[QuestionAward] = field(default_factory=list)

    @property
    def percentage(self) -> Decimal:
        return percentage_of(self.raw_score, self.total_marks)


GRADE_BANDS = (
    (Decimal('90'), 'A+'),
    (Decimal('80'), 'A'),
    (Decimal('70'), 'B+'),
    (Decimal('60'), 'B'),
    (Decimal('50'), 'C'),
)


def letter_grade(percentage) -> str:
    percentage = Decimal(str(percentage))
    for threshold, grade in GRADE_BANDS:
        if percentage >= threshold:
            return grade
    return 'F'
