import asyncio
import html
import re
import logging
from typing import Dict, List

import requests

import config

logger = logging.getLogger(__name__)

# Open Trivia DB category ids. Display metadata only.
CATEGORIES: Dict[int, str] = {
    9: "General Knowledge",
    10: "Entertainment: Books",
    11: "Entertainment: Film",
    12: "Entertainment: Music",
    13: "Entertainment: Musicals & Theatres",
    14: "Entertainment: Television",
    15: "Entertainment: Video Games",
    16: "Entertainment: Board Games",
    17: "Science & Nature",
    18: "Science: Computers",
    19: "Science: Mathematics",
    20: "Mythology",
    21: "Sports",
    22: "Geography",
    23: "History",
    24: "Politics",
    25: "Art",
    26: "Celebrities",
    27: "Animals",
    28: "Vehicles",
    29: "Entertainment: Comics",
    30: "Science: Gadgets",
    31: "Entertainment: Japanese Anime & Manga",
    32: "Entertainment: Cartoon & Animations",
}

RESPONSE_CODE_MESSAGES = {
    1: "not enough questions for this category/difficulty",
    2: "invalid parameter",
    3: "session token not found",
    4: "session token exhausted",
    5: "rate limited",
}

MAX_QUESTION_TEXT_LENGTH = 2000
MAX_ANSWER_LENGTH = 500


class QuestionSourceError(Exception):
    """Raised when the trivia provider can't deliver a question set."""
    pass


def category_name(category_id: int) -> str:
    return CATEGORIES.get(category_id, f"Category {category_id}")


def _sanitize_text(text: str) -> str:
    """Decode provider HTML entities, then strip tags and control characters."""
    text = html.unescape(text)
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    return text.strip()


def _parse_results(data: dict) -> List[dict]:
    if not isinstance(data, dict):
        raise QuestionSourceError(f"Unexpected response type: {type(data).__name__}")
    code = data.get("response_code")
    if code != 0:
        reason = RESPONSE_CODE_MESSAGES.get(code, "unknown response code")
        raise QuestionSourceError(f"Open Trivia DB response_code {code}: {reason}")
    results = data.get("results")
    if not isinstance(results, list) or not results:
        raise QuestionSourceError("Open Trivia DB returned no questions")

    questions = []
    for item in results:
        try:
            incorrect = item["incorrect_answers"]
            if not isinstance(incorrect, list) or not incorrect:
                raise QuestionSourceError(f"Question without incorrect answers: {item!r}")
            questions.append({
                "question": _sanitize_text(item["question"])[:MAX_QUESTION_TEXT_LENGTH],
                "correct_answer": _sanitize_text(item["correct_answer"])[:MAX_ANSWER_LENGTH],
                "incorrect_answers": [_sanitize_text(a)[:MAX_ANSWER_LENGTH] for a in incorrect],
            })
        except (KeyError, TypeError) as e:
            raise QuestionSourceError(f"Malformed question in response: {e}") from e
    return questions


class OpenTriviaSource:
    """Question source backed by the Open Trivia DB HTTP API.

    Any object with an async ``fetch_questions(category, difficulty, count)``
    returning ``[{"question", "correct_answer", "incorrect_answers"}, ...]``
    can stand in for it (the tests use an in-memory fake).
    """

    def __init__(self, api_url: str = config.TRIVIA_API_URL,
                 timeout: int = config.TRIVIA_API_TIMEOUT):
        self.api_url = api_url
        self.timeout = timeout

    def _get(self, params: dict) -> dict:
        response = requests.get(self.api_url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    async def fetch_questions(self, category: int, difficulty: str, count: int) -> List[dict]:
        params = {
            "amount": count,
            "category": category,
            "difficulty": difficulty,
            "type": "multiple",
        }
        logger.info("Fetching %d %s questions for category %s", count, difficulty, category)
        try:
            data = await asyncio.to_thread(self._get, params)
        except requests.Timeout as e:
            logger.warning("Open Trivia DB timed out after %ds", self.timeout)
            raise QuestionSourceError(f"Timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            logger.error("HTTP error calling Open Trivia DB: %s", e)
            raise QuestionSourceError(str(e)) from e
        except ValueError as e:
            logger.error("Failed to parse Open Trivia DB response as JSON: %s", e)
            raise QuestionSourceError("Invalid JSON from Open Trivia DB") from e

        questions = _parse_results(data)
        logger.info("Received %d questions for category %s", len(questions), category)
        return questions


trivia_source = OpenTriviaSource()
