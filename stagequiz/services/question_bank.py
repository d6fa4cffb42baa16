import asyncio
import logging
import random
from typing import Iterator, List, Optional, Sequence, Set
from ..config import Settings, settings as default_settings
from ..models import Mode, Question
from .arithmetic import generate_problem
from .scrambler import scramble

logger = logging.getLogger("stagequiz")

FALLBACK_QUESTION = Question(prompt="1 + 1 = ?", answer="2")
MAX_MIN_WORD_LENGTH = 8

class GenerationFailure(Exception):
    """A batch came out empty after every allowed attempt."""

def min_word_length(stage: int) -> int:
    return min(4 + stage // 2, MAX_MIN_WORD_LENGTH)

class QuestionBankBuilder:
    def __init__(self, words: Sequence[str], settings: Settings | None = None) -> None:
        self.words: List[str] = list(words)
        self.settings = settings or default_settings

    def _pick_word(self, stage: int, used: Set[str]) -> Optional[str]:
        if not self.words:
            return None
        min_len = min_word_length(stage)
        eligible = [w for w in self.words if len(w) >= min_len] or self.words
        candidates = [w for w in eligible if w.upper() not in used]
        if not candidates:
            # pool exhausted for this batch, start recycling
            used.clear()
            candidates = eligible
        word = random.choice(candidates)
        used.add(word.upper())
        return word

    def _word_question(self, stage: int, used: Set[str]) -> Optional[Question]:
        word = self._pick_word(stage, used)
        if word is None:
            return None
        answer = word.upper()
        return Question(prompt=scramble(answer), answer=answer)

    def _generate_one(self, mode: Mode, stage: int, used: Set[str]) -> Optional[Question]:
        if mode == Mode.ARITHMETIC:
            return generate_problem(stage, self.settings.max_level)
        return self._word_question(stage, used)

    def iter_batch(self, mode: Mode, stage: int, count: int | None = None, used: Set[str] | None = None) -> Iterator[List[Question]]:
        """Yield the batch in chunks of ``generation_chunk_size`` questions.

        A failing attempt is replaced by ``FALLBACK_QUESTION``; an attempt that
        produces nothing (an empty word pool) is skipped. Attempts are capped
        at ``max_generation_rounds * count`` and ``GenerationFailure`` is raised
        when none of them produced a question.
        """
        count = self.settings.question_batch_size if count is None else count
        if count < 1:
            raise ValueError(f"count must be >= 1, got {count}")
        if used is None:
            used = set()
        chunk_size = max(1, self.settings.generation_chunk_size)
        max_attempts = max(1, self.settings.max_generation_rounds) * count
        attempts = 0
        produced = 0
        chunk: List[Question] = []
        while produced < count and attempts < max_attempts:
            attempts += 1
            try:
                question = self._generate_one(mode, stage, used)
            except Exception:
                logger.exception("generation_fallback")
                question = FALLBACK_QUESTION
            if question is None:
                continue
            chunk.append(question)
            produced += 1
            if len(chunk) >= chunk_size:
                yield chunk
                chunk = []
        if chunk:
            yield chunk
        if produced == 0:
            logger.warning({"event": "generation_failed", "mode": mode.value, "stage": stage, "attempts": attempts})
            raise GenerationFailure(f"no questions generated for {mode.value} stage {stage} after {attempts} attempts")
        logger.debug({"event": "batch_built", "mode": mode.value, "stage": stage, "count": produced, "attempts": attempts})

    def build_batch(self, mode: Mode, stage: int, count: int | None = None, used: Set[str] | None = None) -> List[Question]:
        questions: List[Question] = []
        for chunk in self.iter_batch(mode, stage, count, used):
            questions.extend(chunk)
        return questions

    async def build_batch_async(self, mode: Mode, stage: int, count: int | None = None, used: Set[str] | None = None) -> List[Question]:
        """Like ``build_batch`` but hands control back to the loop between chunks."""
        questions: List[Question] = []
        for chunk in self.iter_batch(mode, stage, count, used):
            questions.extend(chunk)
            await asyncio.sleep(0)
        return questions
