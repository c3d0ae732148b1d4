from typing import Dict, List, Optional
import asyncio
import random
import time
import logging

import config
from errors import QuestionGenerationFailed, RoundGenerationFailed, RoundPlanExhausted
from round_generator import RoundGenerator

logger = logging.getLogger(__name__)


def make_player(name: str) -> dict:
    return {
        "name": name,
        "current_round_score": 0,
        "total_score": 0,
        "current_round_answers": {},  # question index -> answered correctly
        "end_of_round_rank": None,
        "overall_rank": None,
    }


def public_question(question: dict) -> dict:
    """Question as shown to players: no correct answer."""
    return {k: v for k, v in question.items() if k != "correct_answer"}


class Room:
    def __init__(self, room_id: str, game_master_id: str, round_plan: List[int], mode: int,
                 question_time_limit: int = config.DEFAULT_QUESTION_TIME_LIMIT,
                 questions_per_round: int = config.DEFAULT_QUESTIONS_PER_ROUND):
        self.room_id = room_id
        self.game_master_id = game_master_id
        self.question_time_limit = question_time_limit  # informational, 0 = unlimited
        self.questions_per_round = questions_per_round
        self.mode = mode
        self.round_plan = list(round_plan)
        self.players: Dict[str, dict] = {}  # connection id -> player
        self.quiz_started = False
        self.current_round_category: Optional[int] = None
        self.current_round_number = 0
        self.current_question_index = 1
        self.round_questions: Optional[Dict[int, dict]] = None
        self.round_lock = asyncio.Lock()  # one round fetch in flight per room
        self.last_activity = time.time()

    @property
    def state(self) -> str:
        return "IN_PROGRESS" if self.quiz_started else "LOBBY"

    def touch(self):
        """Update last activity timestamp."""
        self.last_activity = time.time()

    def is_expired(self) -> bool:
        if config.ROOM_TTL_SECONDS <= 0:
            return False
        return time.time() - self.last_activity > config.ROOM_TTL_SECONDS

    def member_ids(self) -> List[str]:
        """Game master first, then every player."""
        return [self.game_master_id] + [cid for cid in self.players if cid != self.game_master_id]

    def current_question(self) -> Optional[dict]:
        if not self.round_questions:
            return None
        return self.round_questions.get(self.current_question_index)

    def apply_round(self, category: int, questions: Dict[int, dict]):
        self.current_round_category = category
        self.current_round_number += 1
        self.round_questions = questions
        self.current_question_index = 1

    def snapshot(self, include_answers: bool = True) -> dict:
        questions = None
        if self.round_questions is not None:
            questions = {
                index: (dict(q) if include_answers else public_question(q))
                for index, q in self.round_questions.items()
            }
        return {
            "room_id": self.room_id,
            "game_master_id": self.game_master_id,
            "question_time_limit": self.question_time_limit,
            "questions_per_round": self.questions_per_round,
            "mode": self.mode,
            "round_plan": list(self.round_plan),
            "players": {cid: _copy_player(p) for cid, p in self.players.items()},
            "quiz_started": self.quiz_started,
            "progress": {
                "current_round_category": self.current_round_category,
                "current_round_number": self.current_round_number,
                "current_question_index": self.current_question_index,
                "round_questions": questions,
            },
        }


def _copy_player(player: dict) -> dict:
    copied = dict(player)
    copied["current_round_answers"] = dict(player["current_round_answers"])
    return copied


class RoomRegistry:
    """Owns every active room, keyed by its 6-digit code."""

    def __init__(self, round_generator: RoundGenerator, rng: Optional[random.Random] = None):
        self.round_generator = round_generator
        self.rooms: Dict[str, Room] = {}
        self._rng = rng or random.Random()

    def __contains__(self, room_id: str) -> bool:
        return room_id in self.rooms

    def __len__(self) -> int:
        return len(self.rooms)

    def generate_room_id(self) -> str:
        """Draw 6-digit codes until one is not taken."""
        while True:
            room_id = str(self._rng.randint(config.ROOM_ID_MIN, config.ROOM_ID_MAX))
            if room_id not in self.rooms:
                return room_id
            logger.debug("Room id collision on %s, drawing again", room_id)

    async def create(self, game_master_id: str, round_plan: List[int], mode: int,
                     question_time_limit: int = config.DEFAULT_QUESTION_TIME_LIMIT,
                     questions_per_round: int = config.DEFAULT_QUESTIONS_PER_ROUND) -> Room:
        """Fetch the first round, then register a new room.

        The id is drawn after the fetch and inserted in the same step, so no
        other create can claim it in between. On failure nothing is registered.
        """
        try:
            first_round = await self.round_generator.next_round(
                None, round_plan, mode, questions_per_round)
        except (RoundGenerationFailed, RoundPlanExhausted) as e:
            logger.error("Error generating first round: %s", e)
            raise QuestionGenerationFailed() from e

        room = Room(self.generate_room_id(), game_master_id, round_plan, mode,
                    question_time_limit=question_time_limit,
                    questions_per_round=questions_per_round)
        room.apply_round(first_round.category, first_round.questions)
        self.rooms[room.room_id] = room
        logger.info("Room created: %s (Total rooms: %d)", room.room_id, len(self.rooms))
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def evict_expired(self) -> List[str]:
        """Drop rooms idle for longer than ROOM_TTL_SECONDS."""
        expired = [room_id for room_id, room in self.rooms.items() if room.is_expired()]
        for room_id in expired:
            self.rooms.pop(room_id, None)
            logger.info("Cleaned up expired room %s", room_id)
        return expired
