"""Scoring primitives for problem sessions.

Pure functions: the composite performance score, small statistics helpers
and the heuristic analysis of a step response.
"""

from __future__ import annotations

import re
import statistics
from dataclasses import dataclass
from typing import Sequence

from mentra.utils.text_utils import word_overlap_similarity

# Composite score weights
ACCURACY_WEIGHT = 0.6
TIME_WEIGHT = 0.2
HINTS_WEIGHT = 0.1
MISTAKES_WEIGHT = 0.1

TIME_BUDGET_MINUTES = 60.0
HINTS_BUDGET = 5
MISTAKES_BUDGET = 5

GENERIC_HINT = "Think about breaking this down into smaller parts. What do you know for certain?"

_REASONING_WORDS = re.compile(
    r"\b(because|therefore|since|so|thus|which means|first|then|finally)\b",
    re.IGNORECASE,
)
_HELP_PHRASES = re.compile(
    r"\b(help|stuck|don'?t know|no idea|confused|hint)\b", re.IGNORECASE
)


def composite_performance_score(
    accuracy: float | None,
    completion_minutes: float | None,
    hints: int,
    mistakes: int,
) -> float:
    """Weighted blend of accuracy, speed, hint usage and mistakes.

    accuracy*0.6 + clamp((60 - minutes)/60, 0, 1)*0.2
    + max(0, (5 - hints)/5)*0.1 + max(0, (5 - mistakes)/5)*0.1

    Missing accuracy counts as 0 and a missing time contributes nothing.
    """
    accuracy_part = (accuracy or 0.0) * ACCURACY_WEIGHT

    if completion_minutes is None:
        time_part = 0.0
    else:
        ratio = (TIME_BUDGET_MINUTES - completion_minutes) / TIME_BUDGET_MINUTES
        time_part = min(1.0, max(0.0, ratio)) * TIME_WEIGHT

    hints_part = max(0.0, (HINTS_BUDGET - hints) / HINTS_BUDGET) * HINTS_WEIGHT
    mistakes_part = max(0.0, (MISTAKES_BUDGET - mistakes) / MISTAKES_BUDGET) * MISTAKES_WEIGHT

    return accuracy_part + time_part + hints_part + mistakes_part


def mean(values: Sequence[float]) -> float | None:
    """Arithmetic mean, None for an empty sequence."""
    if not values:
        return None
    return statistics.fmean(values)


def sample_stdev(values: Sequence[float]) -> float | None:
    """Sample standard deviation, None with fewer than two values."""
    try:
        return statistics.stdev(values)
    except statistics.StatisticsError:
        return None


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float | None:
    """Pearson correlation, None when undefined (n < 2 or a constant input)."""
    if len(set(xs)) < 2 or len(set(ys)) < 2:
        return None
    try:
        return statistics.correlation(xs, ys)
    except statistics.StatisticsError:
        return None


@dataclass
class StepAnalysis:
    """Result of analyzing a step response."""

    quality: str  # excellent | good | needs_improvement | incorrect
    accuracy: float
    feedback: str
    needs_scaffolding: bool = False
    mistake_type: str | None = None

    @property
    def is_correct(self) -> bool:
        return self.quality in ("excellent", "good")


def analyze_step_response(response: str, expected_response: str | None) -> StepAnalysis:
    """Heuristic quality assessment of a student's step response.

    With an expected response the word-overlap similarity decides; without
    one, length, structure and reasoning words do.
    """
    text = response.strip()
    help_requested = bool(_HELP_PHRASES.search(text))

    if expected_response:
        similarity = word_overlap_similarity(text, expected_response)
        if similarity > 0.8:
            analysis = StepAnalysis(
                quality="excellent",
                accuracy=0.9 + (similarity - 0.8) * 0.5,
                feedback="Excellent work! Your answer captures the key ideas.",
            )
        elif similarity > 0.6:
            analysis = StepAnalysis(
                quality="good",
                accuracy=0.7 + (similarity - 0.6),
                feedback="Good job! You're on the right track.",
            )
        elif similarity > 0.3:
            analysis = StepAnalysis(
                quality="needs_improvement",
                accuracy=0.4 + (similarity - 0.3),
                feedback="You're getting there. Look again at what the step is asking.",
                needs_scaffolding=True,
            )
        else:
            analysis = StepAnalysis(
                quality="incorrect",
                accuracy=max(0.1, similarity),
                feedback="That's not quite right. Let's work through it together.",
                needs_scaffolding=True,
                mistake_type="conceptual",
            )
    else:
        has_structure = len(re.findall(r"[.!?\n]", text)) >= 2
        has_reasoning = bool(_REASONING_WORDS.search(text))
        if len(text) > 50 and has_structure and has_reasoning:
            analysis = StepAnalysis(
                quality="good",
                accuracy=0.75,
                feedback="Well reasoned! You explained your thinking clearly.",
            )
        elif len(text) > 20:
            analysis = StepAnalysis(
                quality="needs_improvement",
                accuracy=0.6,
                feedback="Good start. Try explaining why, step by step.",
                needs_scaffolding=True,
            )
        else:
            analysis = StepAnalysis(
                quality="incorrect",
                accuracy=0.3,
                feedback="Can you tell me more? Explain your reasoning in a few sentences.",
                needs_scaffolding=True,
                mistake_type="incomplete",
            )

    analysis.accuracy = round(min(1.0, analysis.accuracy), 2)
    if help_requested:
        analysis.needs_scaffolding = True
    return analysis
