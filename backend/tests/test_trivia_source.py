"""Tests for trivia_source.py: Open Trivia DB requests and response parsing."""
import sys
import os
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from trivia_source import (
    CATEGORIES,
    OpenTriviaSource,
    QuestionSourceError,
    _parse_results,
    _sanitize_text,
    category_name,
)


def api_response(data, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


SAMPLE = {
    "response_code": 0,
    "results": [
        {
            "type": "multiple",
            "difficulty": "easy",
            "category": "General Knowledge",
            "question": "What does &quot;HTTP&quot; stand for?",
            "correct_answer": "Hypertext Transfer Protocol",
            "incorrect_answers": ["Hyperlink Text Protocol", "Home Tool Transfer Protocol", "Hyper Tool Protocol"],
        },
        {
            "type": "multiple",
            "difficulty": "easy",
            "category": "General Knowledge",
            "question": "Which planet is known as the Red Planet?",
            "correct_answer": "Mars",
            "incorrect_answers": ["Venus", "Jupiter", "Saturn"],
        },
    ],
}


class TestSanitizeText:
    def test_unescapes_entities(self):
        assert _sanitize_text("Rock &amp; Roll&#039;s") == "Rock & Roll's"

    def test_strips_tags_and_control_chars(self):
        assert _sanitize_text("  <b>Bold</b>\x00 text ") == "Bold text"


class TestParseResults:
    def test_parses_questions(self):
        questions = _parse_results(SAMPLE)
        assert len(questions) == 2
        assert questions[0]["question"] == 'What does "HTTP" stand for?'
        assert questions[0]["correct_answer"] == "Hypertext Transfer Protocol"
        assert len(questions[0]["incorrect_answers"]) == 3
        assert set(questions[1]) == {"question", "correct_answer", "incorrect_answers"}

    @pytest.mark.parametrize("code", [1, 2, 3, 4, 5, None])
    def test_nonzero_response_code(self, code):
        with pytest.raises(QuestionSourceError):
            _parse_results({"response_code": code, "results": []})

    def test_empty_results(self):
        with pytest.raises(QuestionSourceError):
            _parse_results({"response_code": 0, "results": []})

    def test_missing_field(self):
        with pytest.raises(QuestionSourceError):
            _parse_results({"response_code": 0, "results": [{"question": "Q?"}]})

    def test_no_incorrect_answers(self):
        with pytest.raises(QuestionSourceError):
            _parse_results({"response_code": 0, "results": [
                {"question": "Q?", "correct_answer": "A", "incorrect_answers": []},
            ]})

    def test_non_dict(self):
        with pytest.raises(QuestionSourceError):
            _parse_results(["not", "a", "dict"])


class TestFetchQuestions:
    @pytest.mark.asyncio
    async def test_request_parameters(self):
        source = OpenTriviaSource(api_url="https://trivia.test/api.php", timeout=3)
        with patch("trivia_source.requests.get", return_value=api_response(SAMPLE)) as mock_get:
            questions = await source.fetch_questions(9, "medium", 2)
        assert len(questions) == 2
        mock_get.assert_called_once_with(
            "https://trivia.test/api.php",
            params={"amount": 2, "category": 9, "difficulty": "medium", "type": "multiple"},
            timeout=3,
        )

    @pytest.mark.asyncio
    async def test_timeout(self):
        with patch("trivia_source.requests.get", side_effect=requests.Timeout()):
            with pytest.raises(QuestionSourceError):
                await OpenTriviaSource().fetch_questions(9, "easy", 5)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        with patch("trivia_source.requests.get", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(QuestionSourceError):
                await OpenTriviaSource().fetch_questions(9, "easy", 5)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        with patch("trivia_source.requests.get", return_value=api_response({}, status_code=503)):
            with pytest.raises(QuestionSourceError):
                await OpenTriviaSource().fetch_questions(9, "easy", 5)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        response = api_response(None)
        response.json.side_effect = ValueError("no json")
        with patch("trivia_source.requests.get", return_value=response):
            with pytest.raises(QuestionSourceError):
                await OpenTriviaSource().fetch_questions(9, "easy", 5)

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        with patch("trivia_source.requests.get", return_value=api_response({"response_code": 5, "results": []})):
            with pytest.raises(QuestionSourceError, match="rate limited"):
                await OpenTriviaSource().fetch_questions(9, "easy", 5)


class TestCategories:
    def test_known_category(self):
        assert category_name(9) == "General Knowledge"
        assert CATEGORIES[32] == "Entertainment: Cartoon & Animations"

    def test_unknown_category(self):
        assert category_name(999) == "Category 999"
