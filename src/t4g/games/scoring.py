"""Per-game-type answer payloads and scoring rules.

Answer payloads are a tagged union on ``game_type`` so each game only sees
the fields it understands.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

GAME_TYPES = ("quiz", "ability", "memory")


class _AnswersBase(BaseModel):
    time_taken: int | None = Field(None, ge=0)


class QuizAnswers(_AnswersBase):
    game_type: Literal["quiz"]
    answers: list[Any] = []


class AbilityAnswers(_AnswersBase):
    game_type: Literal["ability"]
    final_score: int = Field(0, ge=0)


class MemoryAnswers(_AnswersBase):
    game_type: Literal["memory"]
    correct_sequences: int = Field(0, ge=0)


GameAnswers = Annotated[
    Union[QuizAnswers, AbilityAnswers, MemoryAnswers],
    Field(discriminator="game_type"),
]


@dataclass(frozen=True)
class ScoreOutcome:
    score: int
    max_score: int
    points_earned: int

    @property
    def percentage(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return round(self.score / self.max_score * 100, 2)


def score_quiz(game_data: dict[str, Any], answers: QuizAnswers, points: int) -> ScoreOutcome:
    """One point per correct answer; payout tiers at 80/60/40 percent."""
    questions = game_data.get("questions", [])
    correct = sum(
        1
        for i, question in enumerate(questions)
        if i < len(answers.answers) and answers.answers[i] == question.get("correct_answer")
    )
    outcome = ScoreOutcome(correct, len(questions), 0)
    pct = outcome.percentage
    if pct >= 80:
        earned = points
    elif pct >= 60:
        earned = int(points * 0.7)
    elif pct >= 40:
        earned = int(points * 0.5)
    else:
        earned = 0
    return ScoreOutcome(correct, len(questions), earned)


def score_ability(game_data: dict[str, Any], answers: AbilityAnswers, points: int) -> ScoreOutcome:
    max_score = int(game_data.get("max_possible_score", 100))
    score = min(answers.final_score, max_score)
    earned = points if score >= max_score * 0.6 else 0
    return ScoreOutcome(score, max_score, earned)


def score_memory(game_data: dict[str, Any], answers: MemoryAnswers, points: int) -> ScoreOutcome:
    max_score = int(game_data.get("total_sequences", 10))
    score = min(answers.correct_sequences, max_score)
    earned = points if score >= max_score * 0.7 else 0
    return ScoreOutcome(score, max_score, earned)


def calculate_score(
    game_data: dict[str, Any],
    answers: QuizAnswers | AbilityAnswers | MemoryAnswers,
    points_per_completion: int,
) -> ScoreOutcome:
    if isinstance(answers, QuizAnswers):
        return score_quiz(game_data, answers, points_per_completion)
    if isinstance(answers, AbilityAnswers):
        return score_ability(game_data, answers, points_per_completion)
    return score_memory(game_data, answers, points_per_completion)


def result_message(outcome: ScoreOutcome) -> str:
    pct = outcome.percentage
    if pct >= 90:
        return "Excellent! Perfect performance!"
    if pct >= 80:
        return "Great job! Well done!"
    if pct >= 60:
        return "Good effort! Keep improving!"
    if pct >= 40:
        return "Not bad! Try again for better results!"
    return "Keep practicing! You'll get better!"
