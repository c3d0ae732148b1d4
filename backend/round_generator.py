import random
import logging
from typing import Dict, List, Optional

import config
from errors import RoundGenerationFailed, RoundPlanExhausted
from trivia_source import QuestionSourceError

logger = logging.getLogger(__name__)


class RoundResult:
    """A materialized round: its category and questions keyed 1..N."""

    def __init__(self, category: int, difficulty: str, questions: Dict[int, dict]):
        self.category = category
        self.difficulty = difficulty
        self.questions = questions


def difficulty_for_mode(mode) -> str:
    return config.DIFFICULTY_BY_MODE.get(mode, config.DEFAULT_DIFFICULTY)


def next_category(current_category: Optional[int], round_plan: List[int]) -> Optional[int]:
    """Return the category after ``current_category`` or None when the plan is used up.

    The current category is located by its first occurrence in the plan, so a
    plan with repeated categories always resumes after the first repeat.
    """
    if current_category is None:
        return round_plan[0] if round_plan else None
    try:
        index = round_plan.index(current_category)
    except ValueError:
        return None
    if index < len(round_plan) - 1:
        return round_plan[index + 1]
    return None


def build_question(raw: dict, rng: random.Random = random) -> dict:
    """Merge correct and incorrect answers and shuffle them."""
    all_answers = [raw["correct_answer"], *raw["incorrect_answers"]]
    rng.shuffle(all_answers)
    return {
        "question": raw["question"],
        "correct_answer": raw["correct_answer"],
        "all_answers": all_answers,
    }


class RoundGenerator:
    def __init__(self, source, rng: Optional[random.Random] = None):
        self.source = source
        self.rng = rng or random.Random()

    async def next_round(self, current_category: Optional[int], round_plan: List[int],
                         mode, questions_per_round: int) -> RoundResult:
        """Fetch the questions for the round after ``current_category``.

        Raises RoundPlanExhausted when there is no next round, and
        RoundGenerationFailed when the question source fails. Nothing is
        written to any room here; callers apply the result.
        """
        difficulty = difficulty_for_mode(mode)
        category = next_category(current_category, round_plan)
        if category is None:
            logger.info("Round plan exhausted after category %s", current_category)
            raise RoundPlanExhausted()

        try:
            raw_questions = await self.source.fetch_questions(category, difficulty, questions_per_round)
        except QuestionSourceError as e:
            logger.error("Error fetching questions for category %s: %s", category, e)
            raise RoundGenerationFailed() from e

        questions = {
            index: build_question(raw, self.rng)
            for index, raw in enumerate(raw_questions, start=1)
        }
        logger.info("Generated round: category %s (%s), %d questions",
                    category, difficulty, len(questions))
        return RoundResult(category, difficulty, questions)
