"""Errors returned to the caller of a room operation.

Every error carries a stable ``code`` that the transport puts on the wire,
so clients can branch on it without parsing messages.
"""


class TriviaError(Exception):
    """Base class for all room/session errors."""
    code = "trivia_error"
    message = "Trivia error"

    def __init__(self, message: str = ""):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class RoomNotFound(TriviaError):
    code = "room_not_found"

    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class QuizAlreadyStarted(TriviaError):
    code = "quiz_already_started"
    message = "Quiz has already started. No new players can join."


class QuizNotStarted(TriviaError):
    code = "quiz_not_started"
    message = "Quiz has not started yet"


class NoPlayers(TriviaError):
    code = "no_players"
    message = "Cannot start quiz: No players in the room"


class NotGameMaster(TriviaError):
    code = "not_game_master"
    message = "Only the game master can do that"


class PlayerNotFound(TriviaError):
    code = "player_not_found"

    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found in the room")


class NoActiveQuestion(TriviaError):
    code = "no_active_question"
    message = "No active question found"


class InvalidQuestionIndex(TriviaError):
    code = "invalid_question_index"

    def __init__(self, question_index, question_count: int):
        self.question_index = question_index
        super().__init__(f"Question {question_index} is not in this round (1-{question_count})")


class InvalidAnswerChoice(TriviaError):
    code = "invalid_answer_choice"

    def __init__(self, choice, answer_count: int):
        self.choice = choice
        super().__init__(f"Answer {choice} is not a valid choice (1-{answer_count})")


class AnswerAlreadySubmitted(TriviaError):
    code = "answer_already_submitted"
    message = "Answer already submitted for this question"


class RoundGenerationFailed(TriviaError):
    code = "round_generation_failed"
    message = "Failed to generate round questions"


class QuestionGenerationFailed(RoundGenerationFailed):
    """First-round failure while creating a room; no room is registered."""
    code = "question_generation_failed"
    message = "Failed to create room due to question generation error"


class RoundGenerationInProgress(TriviaError):
    code = "round_generation_in_progress"
    message = "The next round is already being generated"


class RoundPlanExhausted(TriviaError):
    """The round plan has no rounds left. Terminal, not a failure."""
    code = "round_plan_exhausted"
    message = "No rounds left in the round plan"
    terminal = True


class InvalidPayload(TriviaError):
    code = "invalid_payload"
    message = "Invalid payload"
