"""
Deterministic scoring of submitted answers against an exam's answer key.

Answers arrive as a mapping of question id to a submitted string. The
submission format for choice questions is not fixed by the client, so
single-choice answers are matched permissively by option text, option id or
option index.
"""
import logging
from decimal import Decimal
from typing import Dict, Optional

from .base import QuestionAward, ScoreCard, is_passing, round_half_up

logger = logging.getLogger(__name__)

MULTI_CHOICE_DELIMITER = ','


def normalize_answers(answers: Optional[Dict]) -> Dict[str, str]:
    """Key answers by string question id; list values become delimited strings."""
    normalized = {}
    for key, value in (answers or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            value = MULTI_CHOICE_DELIMITER.join(str(item) for item in value)
        normalized[str(key)] = str(value)
    return normalized


class ScoringEngine:
    """Scores every answered question and derives the pass/fail verdict."""

    def score(self, exam, answers: Optional[Dict]) -> ScoreCard:
        submitted = normalize_answers(answers)
        awards = []
        running_total = Decimal('0')

        for question in exam.questions.all():
            value = submitted.get(str(question.pk))
            if value is None or not value.strip():
                continue

            awarded = self.grade_question(question, value.strip())
            awards.append(QuestionAward(
                question_id=question.pk,
                question_type=question.question_type,
                awarded=awarded,
                weight=question.weight
            ))
            running_total += awarded

        raw_score = round_half_up(running_total)
        total_marks = exam.get_total_marks()
        passed = is_passing(raw_score, total_marks)

        logger.info(
            f"Scored exam {exam.pk}: {raw_score}/{total_marks} "
            f"({len(awards)} answered, passed={passed})"
        )
        return ScoreCard(raw_score=raw_score, total_marks=total_marks, passed=passed, awards=awards)

    def grade_question(self, question, answer: str) -> Decimal:
        """Route to the grading rule for the question type."""
        question_type = question.question_type
        if question_type == question.QuestionType.SINGLE_CHOICE:
            return self._grade_single_choice(question, answer)
        if question_type == question.QuestionType.MULTI_CHOICE:
            return self._grade_multi_choice(question, answer)
        # Free text is not evaluated: any non-blank answer earns the weight.
        return Decimal(question.weight)

    def _grade_single_choice(self, question, answer: str) -> Decimal:
        indices = question.correct_option_indices()
        if not indices:
            logger.debug(f"Question {question.pk}: no usable correct option")
            return Decimal('0')

        index = indices[0]
        option = question.ordered_options()[index]
        accepted = {option.text.strip(), str(option.pk), str(index)}

        if answer in accepted:
            return Decimal(question.weight)
        logger.debug(f"Question {question.pk}: '{answer}' does not match option {index}")
        return Decimal('0')

    def _grade_multi_choice(self, question, answer: str) -> Decimal:
        options = question.ordered_options()
        correct_set = {options[index].text.strip() for index in question.correct_option_indices()}
        if not correct_set:
            return Decimal('0')

        selections = [part.strip() for part in answer.split(MULTI_CHOICE_DELIMITER)]
        selections = list(dict.fromkeys(part for part in selections if part))

        correct = sum(1 for selection in selections if selection in correct_set)
        incorrect = len(selections) - correct
        partial = max(0, correct - incorrect)

        logger.debug(
            f"Question {question.pk}: multi-choice correct={correct} incorrect={incorrect}"
        )
        return Decimal(partial) / Decimal(len(correct_set)) * Decimal(question.weight)
