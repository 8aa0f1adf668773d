"""
Quiz sequencing, scoring and distractor selection.

The quiz state is a frozen SessionState that every transition replaces as a
whole. The pure functions below compute transitions; QuizEngine wraps them
with a clock, a random source and the delayed advance after each answer.
"""

import logging
import math
import random
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence, Tuple

from errors import EmptyPlaylistError, QuizStateError, ValidationError

logger = logging.getLogger(__name__)

CHOICE_COUNT = 4
BASE_POINTS = 100
MAX_TIME_BONUS = 10  # seconds
POINTS_PER_BONUS_SECOND = 10
ADVANCE_DELAY_SECONDS = 1.5


@dataclass(frozen=True)
class Track:
    name: str
    preview_url: Optional[str] = None


@dataclass(frozen=True)
class QuizResult:
    score: int
    total_questions: int


@dataclass(frozen=True)
class SessionState:
    tracks: Tuple[Track, ...]
    question_index: int
    score: int
    choices: Tuple[str, ...]
    question_started_at: float
    generation: int
    selected_answer: Optional[str] = None
    is_correct: Optional[bool] = None

    @property
    def current_track(self) -> Track:
        return self.tracks[self.question_index]

    @property
    def correct_name(self) -> str:
        return self.current_track.name

    @property
    def is_last_question(self) -> bool:
        return self.question_index == len(self.tracks) - 1

    @property
    def answered(self) -> bool:
        return self.selected_answer is not None


def points_for(elapsed_seconds: float, correct: bool) -> int:
    """100 points for a correct answer plus up to 100 more for answering within 10 seconds."""
    if not correct:
        return 0
    time_bonus = max(0, MAX_TIME_BONUS - max(0, elapsed_seconds))
    return math.floor(BASE_POINTS + time_bonus * POINTS_PER_BONUS_SECOND)


def pick_distractors(correct_name: str, tracks: Sequence[Track], rng: random.Random,
                     count: int = CHOICE_COUNT - 1) -> list:
    pool = [t.name for t in tracks if t.name != correct_name]
    rng.shuffle(pool)
    return pool[:count]


def build_choices(tracks: Sequence[Track], index: int, rng: random.Random) -> Tuple[str, ...]:
    correct_name = tracks[index].name
    choices = pick_distractors(correct_name, tracks, rng) + [correct_name]
    rng.shuffle(choices)
    return tuple(choices)


def start_quiz(tracks: Sequence[Track], now: float, rng: random.Random, generation: int = 0) -> SessionState:
    tracks = tuple(tracks)
    if not tracks:
        raise EmptyPlaylistError()
    return SessionState(
        tracks=tracks,
        question_index=0,
        score=0,
        choices=build_choices(tracks, 0, rng),
        question_started_at=now,
        generation=generation,
    )


def submit_answer(state: SessionState, choice: str, now: float) -> Tuple[SessionState, int]:
    if state.answered:
        raise QuizStateError("Question already answered")
    if choice not in state.choices:
        raise ValidationError("Choice is not one of the offered answers")

    correct = choice == state.correct_name
    points = points_for(now - state.question_started_at, correct)
    new_state = replace(state, score=state.score + points, selected_answer=choice, is_correct=correct)
    return new_state, points


def advance(state: SessionState, now: float, rng: random.Random) -> Tuple[SessionState, Optional[QuizResult]]:
    """Move to the next question, or report the final result when on the last one."""
    if state.is_last_question:
        return state, QuizResult(score=state.score, total_questions=len(state.tracks))

    index = state.question_index + 1
    new_state = replace(
        state,
        question_index=index,
        choices=build_choices(state.tracks, index, rng),
        selected_answer=None,
        is_correct=None,
        question_started_at=now,
    )
    return new_state, None


class TimerScheduler:
    def call_later(self, delay: float, callback: Callable[[], None]):
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class QuizEngine:
    """One quiz at a time: Idle (state is None) or InProgress."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, rng: Optional[random.Random] = None,
                 scheduler=None, advance_delay: float = ADVANCE_DELAY_SECONDS):
        self._clock = clock
        self._rng = rng or random.Random()
        self._scheduler = scheduler or TimerScheduler()
        self.advance_delay = advance_delay
        # timer callbacks fire on their own thread
        self._lock = threading.RLock()
        self._generation = 0
        self._pending = None
        self.state: Optional[SessionState] = None
        self.last_result: Optional[QuizResult] = None

    @property
    def in_progress(self) -> bool:
        return self.state is not None

    def start(self, tracks: Sequence[Track]) -> SessionState:
        with self._lock:
            state = start_quiz(tracks, self._clock(), self._rng, generation=self._generation + 1)
            self._cancel_pending()
            self._generation = state.generation
            self.state = state
            self.last_result = None
            logger.info("Quiz %d started with %d questions", state.generation, len(state.tracks))
            return state

    def answer(self, choice: str) -> int:
        with self._lock:
            if self.state is None:
                raise QuizStateError("No quiz in progress")
            state, points = submit_answer(self.state, choice, self._clock())
            self.state = state
            key = (state.generation, state.question_index)
            self._cancel_pending()
            self._pending = self._scheduler.call_later(self.advance_delay, lambda: self._advance_if_current(key))
            return points

    def advance(self, generation: Optional[int] = None, question_index: Optional[int] = None) -> Optional[QuizResult]:
        """
        Advance now instead of waiting for the timer. When a generation and
        question index are given, a request for a question that has already
        moved on is ignored.
        """
        with self._lock:
            if generation is not None or question_index is not None:
                if not self._is_current((generation, question_index)):
                    logger.debug("Ignoring stale advance for %s/%s", generation, question_index)
                    return None
            if self.state is None:
                raise QuizStateError("No quiz in progress")
            if not self.state.answered:
                raise QuizStateError("Current question has not been answered")
            self._cancel_pending()
            return self._advance_locked()

    def reset(self) -> None:
        with self._lock:
            self._cancel_pending()
            self._generation += 1
            self.state = None
            self.last_result = None

    def _is_current(self, key) -> bool:
        state = self.state
        return state is not None and (state.generation, state.question_index) == key

    def _advance_if_current(self, key) -> None:
        with self._lock:
            if not self._is_current(key) or not self.state.answered:
                return
            self._pending = None
            self._advance_locked()

    def _advance_locked(self) -> Optional[QuizResult]:
        state, result = advance(self.state, self._clock(), self._rng)
        if result is None:
            self.state = state
            return None
        logger.info("Quiz %d finished with score %d", state.generation, result.score)
        self.state = None
        self.last_result = result
        return result

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


class QuizRegistry:
    """
    In-memory map from a browser's quiz id to its engine. Holds at most
    max_size engines; the least recently used one is evicted first.
    """

    def __init__(self, factory: Callable[[], QuizEngine], max_size: int = 1000):
        self._factory = factory
        self.max_size = max_size
        self._engines = OrderedDict()
        self._lock = threading.Lock()

    def get(self, quiz_id) -> Optional[QuizEngine]:
        with self._lock:
            engine = self._engines.get(quiz_id)
            if engine is not None:
                self._engines.move_to_end(quiz_id)
            return engine

    def get_or_create(self, quiz_id) -> QuizEngine:
        evicted = []
        with self._lock:
            engine = self._engines.get(quiz_id)
            if engine is None:
                engine = self._engines[quiz_id] = self._factory()
                while len(self._engines) > self.max_size:
                    evicted.append(self._engines.popitem(last=False)[1])
            else:
                self._engines.move_to_end(quiz_id)
        for old in evicted:
            old.reset()
        if evicted:
            logger.info("Evicted %d idle quizzes", len(evicted))
        return engine

    def discard(self, quiz_id) -> None:
        with self._lock:
            engine = self._engines.pop(quiz_id, None)
        if engine is not None:
            engine.reset()

    def __len__(self):
        return len(self._engines)
