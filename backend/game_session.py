"""Room session state machine.

A room starts in the lobby, where players may join. Once the game master
starts the quiz the room is in progress for good: the game master moves
through the questions of the current round, ends the round (which ranks
everyone), and pulls the next round from the round plan until it runs out.
End of game ranks everyone once more but doesn't lock the room.

Every operation resolves the room first and raises a ``TriviaError`` on any
illegal call. Room state is only written after all checks (and, for the next
round, after the question fetch) have succeeded.
"""
from typing import List, Optional
import logging

from errors import (
    AnswerAlreadySubmitted,
    InvalidAnswerChoice,
    InvalidQuestionIndex,
    NoActiveQuestion,
    NoPlayers,
    NotGameMaster,
    PlayerNotFound,
    QuizAlreadyStarted,
    QuizNotStarted,
    RoomNotFound,
    RoundGenerationInProgress,
)
from rankings import apply_rankings
from room_registry import Room, RoomRegistry, make_player, public_question
from trivia_source import category_name

logger = logging.getLogger(__name__)


class Notifier:
    """Outbound messaging: to one connection, or to a set of them."""

    async def send_to(self, connection_id: str, message: dict):
        raise NotImplementedError

    async def broadcast(self, connection_ids: List[str], message: dict):
        raise NotImplementedError


class GameSession:
    def __init__(self, registry: RoomRegistry, notifier: Notifier):
        self.registry = registry
        self.notifier = notifier

    def _get_room(self, room_id: str) -> Room:
        room = self.registry.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        room.touch()
        return room

    @staticmethod
    def _require_game_master(room: Room, connection_id: str):
        if connection_id != room.game_master_id:
            raise NotGameMaster()

    @staticmethod
    def _require_started(room: Room):
        if not room.quiz_started:
            raise QuizNotStarted()

    async def create_room(self, connection_id: str, round_plan: List[int], mode: int,
                          question_time_limit: Optional[int] = None,
                          questions_per_round: Optional[int] = None) -> Room:
        kwargs = {}
        if question_time_limit is not None:
            kwargs["question_time_limit"] = question_time_limit
        if questions_per_round is not None:
            kwargs["questions_per_round"] = questions_per_round
        return await self.registry.create(connection_id, round_plan, mode, **kwargs)

    async def join(self, room_id: str, connection_id: str, name: str) -> Room:
        room = self._get_room(room_id)
        if room.quiz_started:
            raise QuizAlreadyStarted()
        if connection_id in room.players:
            return room

        room.players[connection_id] = make_player(name)
        logger.info("Player '%s' joined room %s", name, room.room_id)
        await self.notifier.send_to(room.game_master_id, {
            "type": "PLAYER_JOINED",
            "player_id": connection_id,
            "name": name,
            "room": room.snapshot(),
        })
        return room

    async def start_quiz(self, room_id: str, connection_id: str) -> str:
        room = self._get_room(room_id)
        self._require_game_master(room, connection_id)
        if room.quiz_started:
            raise QuizAlreadyStarted()
        if not room.players:
            raise NoPlayers()

        room.quiz_started = True
        logger.info("Quiz started in room %s with %d players", room.room_id, len(room.players))
        await self.notifier.broadcast(room.member_ids(), {
            "type": "QUIZ_STARTED",
            "room_id": room.room_id,
            "message": "The quiz has started!",
        })
        return "Quiz started successfully"

    async def advance_question(self, room_id: str, connection_id: str, question_index) -> Room:
        room = self._get_room(room_id)
        self._require_game_master(room, connection_id)
        self._require_started(room)
        questions = room.round_questions or {}
        if (isinstance(question_index, bool) or not isinstance(question_index, int)
                or question_index not in questions):
            raise InvalidQuestionIndex(question_index, len(questions))

        room.current_question_index = question_index
        logger.info("Question updated to %d in room %s", question_index, room.room_id)
        await self.notifier.broadcast(room.member_ids(), {
            "type": "NEW_QUESTION",
            "room_id": room.room_id,
            "question_index": question_index,
            "question": public_question(questions[question_index]),
        })
        return room

    async def submit_answer(self, room_id: str, connection_id: str, answer) -> str:
        """Score one answer. Lobby answers are refused even though round one is loaded."""
        room = self._get_room(room_id)
        player = room.players.get(connection_id)
        if player is None:
            raise PlayerNotFound(connection_id)
        self._require_started(room)
        question = room.current_question()
        if question is None:
            raise NoActiveQuestion()

        question_index = room.current_question_index
        if question_index in player["current_round_answers"]:
            raise AnswerAlreadySubmitted()
        all_answers = question["all_answers"]
        if isinstance(answer, bool) or not isinstance(answer, int) or not 1 <= answer <= len(all_answers):
            raise InvalidAnswerChoice(answer, len(all_answers))

        selected = all_answers[answer - 1]
        is_correct = selected == question["correct_answer"]
        player["current_round_answers"][question_index] = is_correct
        if is_correct:
            player["current_round_score"] += 1
            player["total_score"] += 1

        logger.info("Player '%s' answered '%s' in room %s (correct: %s)",
                    player["name"], selected, room.room_id, is_correct)
        await self.notifier.send_to(room.game_master_id, {
            "type": "PLAYER_ANSWERED",
            "player_id": connection_id,
            "player_name": player["name"],
            "question_index": question_index,
            "answer": selected,
            "is_correct": is_correct,
        })
        return "Answer submitted successfully."

    async def _rank_and_notify(self, room: Room, msg_type: str, message: str):
        apply_rankings(room.players)
        # Players who join while these sends are pending are ranked next time
        for player_id, player in list(room.players.items()):
            await self.notifier.send_to(player_id, {
                "type": msg_type,
                "room_id": room.room_id,
                "message": message,
                "player_data": dict(player, current_round_answers=dict(player["current_round_answers"])),
            })

    async def end_of_round(self, room_id: str, connection_id: str) -> Room:
        room = self._get_room(room_id)
        self._require_game_master(room, connection_id)
        await self._rank_and_notify(room, "END_OF_ROUND", "The round has ended.")
        logger.info("End of round %d sent in room %s", room.current_round_number, room.room_id)
        return room

    async def next_round(self, room_id: str, connection_id: str) -> Room:
        room = self._get_room(room_id)
        self._require_game_master(room, connection_id)
        self._require_started(room)
        if room.round_lock.locked():
            raise RoundGenerationInProgress()

        async with room.round_lock:
            # Raises before anything below runs, leaving the current round in place
            result = await self.registry.round_generator.next_round(
                room.current_round_category, room.round_plan, room.mode, room.questions_per_round)

            room.apply_round(result.category, result.questions)
            for player in room.players.values():
                player["current_round_score"] = 0
                player["current_round_answers"] = {}
                player["end_of_round_rank"] = None

        logger.info("Round %d (category %s) started in room %s",
                    room.current_round_number, result.category, room.room_id)
        await self.notifier.broadcast(room.member_ids(), {
            "type": "ROUND_STARTED",
            "room_id": room.room_id,
            "message": "New round started!",
            "round_number": room.current_round_number,
            "category": result.category,
            "category_name": category_name(result.category),
            "question_count": len(result.questions),
        })
        return room

    async def end_of_game(self, room_id: str, connection_id: str) -> Room:
        room = self._get_room(room_id)
        self._require_game_master(room, connection_id)
        await self._rank_and_notify(room, "END_OF_GAME", "The game has ended.")
        logger.info("End of game sent in room %s", room.room_id)
        return room
