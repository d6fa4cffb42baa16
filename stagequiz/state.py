import asyncio
import logging
from typing import Dict, List, Optional
from .config import Settings, settings as default_settings
from .models import Mode, Phase, Question, SessionSnapshot
from .services.question_bank import GenerationFailure, QuestionBankBuilder

logger = logging.getLogger("stagequiz")

MISSING_QUESTION_MESSAGE = "Question missing, regenerating…"

def _norm(text: str) -> str:
	return (text or '').strip().lower()

class InvalidTransition(Exception):
	"""The event is not allowed in the session's current phase."""

class MissingQuestion(Exception):
	"""The active index points past the end of the batch."""

class GameSession:
	"""Mode, stage, score and the per-question timer of one play-through.

	Every method is a synchronous transition. Timers and batch building are
	driven from outside (see ``GameController``); ``snapshot()`` gives the
	read-only view handed to the presentation layer.
	"""

	def __init__(self, settings: Settings | None = None) -> None:
		self.settings = settings or default_settings
		self.reset()

	def reset(self) -> None:
		self.phase = Phase.MODE_SELECT
		self.mode: Optional[Mode] = None
		self.stage = 1
		self.score = 0
		self.questions: List[Question] = []
		self.current_index = 0
		self.time_remaining = 0
		self.message: Optional[str] = None
		self.hint: Optional[str] = None
		self.error: Optional[str] = None

	def select_mode(self, mode: Mode) -> None:
		self.reset()
		self.mode = Mode(mode)
		self.phase = Phase.LOADING

	def start_loading(self, message: Optional[str] = None) -> None:
		if self.mode is None:
			raise InvalidTransition("no mode selected")
		self.phase = Phase.LOADING
		self.questions = []
		self.current_index = 0
		self.time_remaining = 0
		self.message = message
		self.hint = None

	def load_succeeded(self, questions: List[Question]) -> None:
		if self.phase != Phase.LOADING:
			raise InvalidTransition(f"cannot finish loading in phase {self.phase.value}")
		if not questions:
			self.load_failed("no questions generated")
			return
		self.questions = list(questions)
		self.current_index = 0
		self.time_remaining = self.settings.question_time_limit
		self.phase = Phase.ACTIVE

	def load_failed(self, error: str) -> None:
		self.phase = Phase.ERROR
		self.error = error
		self.questions = []
		self.current_index = 0
		self.time_remaining = 0
		self.message = None
		self.hint = None

	def question_missing(self) -> bool:
		return self.phase == Phase.ACTIVE and not (0 <= self.current_index < len(self.questions))

	def current_question(self) -> Question:
		if not (0 <= self.current_index < len(self.questions)):
			raise MissingQuestion(f"index {self.current_index} outside batch of {len(self.questions)}")
		return self.questions[self.current_index]

	def recover_missing(self) -> None:
		self.start_loading(MISSING_QUESTION_MESSAGE)

	def submit_answer(self, text: str) -> bool:
		if self.phase != Phase.ACTIVE:
			raise InvalidTransition(f"cannot submit an answer in phase {self.phase.value}")
		question = self.current_question()
		correct = _norm(text) == _norm(question.answer)
		if correct:
			self.score += self.settings.points_per_correct
			self.message = f"🎉 Correct! +{self.settings.points_per_correct} points"
		else:
			self.message = f"❌ Incorrect. The answer was {question.answer}."
		self.phase = Phase.SCORING
		return correct

	def tick(self, seconds: int = 1) -> bool:
		"""Count the timer down; returns True when this tick ran it out."""
		if self.phase != Phase.ACTIVE:
			return False
		self.time_remaining = max(0, self.time_remaining - seconds)
		if self.time_remaining == 0:
			self.timeout()
			return True
		return False

	def timeout(self) -> None:
		if self.phase != Phase.ACTIVE:
			raise InvalidTransition(f"cannot time out in phase {self.phase.value}")
		question = self.current_question()
		self.time_remaining = 0
		self.message = f"⏰ Time's up! The answer was {question.answer}."
		self.phase = Phase.SCORING

	def next_question(self) -> bool:
		"""Advance to the next question; returns True when a new batch is needed."""
		if self.phase not in (Phase.ACTIVE, Phase.SCORING):
			raise InvalidTransition(f"cannot advance in phase {self.phase.value}")
		self.hint = None
		if not (0 <= self.current_index < len(self.questions)):
			self.recover_missing()
			return True
		if self.current_index + 1 < len(self.questions):
			self.current_index += 1
			self.time_remaining = self.settings.question_time_limit
			self.message = None
			self.phase = Phase.ACTIVE
			return False
		self.stage += 1
		self.start_loading(f"🚀 Stage {self.stage}!")
		return True

	def reveal_hint(self) -> Optional[str]:
		if self.phase != Phase.ACTIVE:
			raise InvalidTransition(f"no active question in phase {self.phase.value}")
		answer = self.current_question().answer
		if self.mode != Mode.WORD:
			return None
		self.hint = answer if len(answer) <= 2 else f"{answer[0]}...{answer[-1]}"
		return self.hint

	def back_to_menu(self) -> None:
		self.reset()

	def snapshot(self) -> SessionSnapshot:
		question = None
		if self.phase in (Phase.ACTIVE, Phase.SCORING) and 0 <= self.current_index < len(self.questions):
			question = self.questions[self.current_index].prompt
		return SessionSnapshot(
			phase=self.phase,
			mode=self.mode,
			stage=self.stage,
			score=self.score,
			question=question,
			question_index=self.current_index,
			total_questions=len(self.questions),
			time_remaining=self.time_remaining,
			message=self.message,
			hint=self.hint,
			loading=self.phase == Phase.LOADING,
			error=self.error,
		)

class GameController:
	"""Drives one ``GameSession`` from the asyncio loop.

	Owns the periodic tick, the delayed advance after a scored answer and
	the batch loading task. Must be used from inside a running loop.
	"""

	def __init__(self, builder: QuestionBankBuilder, settings: Settings | None = None) -> None:
		self.settings = settings or default_settings
		self.builder = builder
		self.session = GameSession(self.settings)
		self._tick_handle: Optional[asyncio.TimerHandle] = None
		self._advance_handle: Optional[asyncio.TimerHandle] = None
		self._load_task: Optional[asyncio.Task] = None

	def snapshot(self) -> SessionSnapshot:
		if self.session.question_missing():
			self._recover_missing()
		return self.session.snapshot()

	async def select_mode(self, mode: Mode) -> SessionSnapshot:
		self._cancel_timers()
		previous = self._cancel_load()
		if previous is not None:
			# the previous build must resolve before the next one starts
			await asyncio.wait({previous})
		self.session.select_mode(mode)
		logger.debug({"event": "mode_selected", "mode": self.session.mode.value})
		# a load cancelled by back_to_menu must not raise here
		await asyncio.wait({self._spawn_load()})
		return self.snapshot()

	def submit_answer(self, text: str) -> bool:
		try:
			correct = self.session.submit_answer(text)
		except MissingQuestion:
			self._recover_missing()
			return False
		self._cancel_tick()
		self._schedule_advance()
		logger.debug({"event": "answer_scored", "correct": correct, "score": self.session.score, "stage": self.session.stage, "index": self.session.current_index})
		return correct

	def reveal_hint(self) -> Optional[str]:
		try:
			return self.session.reveal_hint()
		except MissingQuestion:
			self._recover_missing()
			return None

	def back_to_menu(self) -> SessionSnapshot:
		self.close()
		self.session.back_to_menu()
		return self.session.snapshot()

	def close(self) -> None:
		self._cancel_timers()
		self._cancel_load()

	@property
	def loading_task(self) -> Optional[asyncio.Task]:
		return self._load_task

	def _spawn_load(self) -> asyncio.Task:
		if self._load_task is not None and not self._load_task.done():
			return self._load_task
		self._load_task = asyncio.get_running_loop().create_task(self._load())
		return self._load_task

	async def _load(self) -> None:
		session = self.session
		mode, stage = session.mode, session.stage
		try:
			questions = await self.builder.build_batch_async(mode, stage, self.settings.question_batch_size, used=set())
		except GenerationFailure as e:
			logger.warning({"event": "batch_failed", "mode": mode.value, "stage": stage, "error": str(e)})
			session.load_failed(str(e))
			return
		except Exception as e:
			logger.exception("batch_load_failed")
			session.load_failed(f"{type(e).__name__}: {e}")
			return
		if session.phase != Phase.LOADING:
			return
		session.load_succeeded(questions)
		logger.info({"event": "batch_ready", "mode": mode.value, "stage": stage, "count": len(questions)})
		if session.phase == Phase.ACTIVE:
			self._start_ticking()

	def _recover_missing(self) -> None:
		logger.warning({"event": "question_missing", "index": self.session.current_index, "total": len(self.session.questions)})
		self._cancel_timers()
		self.session.recover_missing()
		self._spawn_load()

	def _start_ticking(self) -> None:
		self._cancel_tick()
		loop = asyncio.get_running_loop()
		self._tick_handle = loop.call_later(self.settings.tick_seconds, self._on_tick)

	def _on_tick(self) -> None:
		self._tick_handle = None
		try:
			timed_out = self.session.tick()
		except MissingQuestion:
			self._recover_missing()
			return
		if timed_out:
			logger.debug({"event": "timeout", "stage": self.session.stage, "index": self.session.current_index})
			self._schedule_advance()
		elif self.session.phase == Phase.ACTIVE:
			self._start_ticking()

	def _schedule_advance(self) -> None:
		self._cancel_advance()
		loop = asyncio.get_running_loop()
		self._advance_handle = loop.call_later(self.settings.advance_delay_seconds, self._on_advance)

	def _on_advance(self) -> None:
		self._advance_handle = None
		if self.session.phase != Phase.SCORING:
			return
		if self.session.next_question():
			self._cancel_tick()
			logger.info({"event": "stage_advanced", "stage": self.session.stage, "score": self.session.score})
			self._spawn_load()
		else:
			self._start_ticking()

	def _cancel_tick(self) -> None:
		if self._tick_handle is not None:
			self._tick_handle.cancel()
			self._tick_handle = None

	def _cancel_advance(self) -> None:
		if self._advance_handle is not None:
			self._advance_handle.cancel()
			self._advance_handle = None

	def _cancel_timers(self) -> None:
		self._cancel_tick()
		self._cancel_advance()

	def _cancel_load(self) -> Optional[asyncio.Task]:
		task = self._load_task
		self._load_task = None
		if task is None or task.done():
			return None
		task.cancel()
		return task

class SessionStore:
	def __init__(self) -> None:
		self.sessions: Dict[str, GameController] = {}

	def create_session(self, session_id: str, controller: GameController) -> None:
		self.sessions[session_id] = controller

	def has_session(self, session_id: str) -> bool:
		return session_id in self.sessions

	def get(self, session_id: str) -> GameController:
		return self.sessions[session_id]

	def drop_session(self, session_id: str) -> None:
		controller = self.sessions.pop(session_id, None)
		if controller is not None:
			controller.close()

	def clear(self) -> None:
		for session_id in list(self.sessions):
			self.drop_session(session_id)

session_store = SessionStore()
