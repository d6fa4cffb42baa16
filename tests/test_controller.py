import asyncio

from conftest import wait_for

from stagequiz.models import Mode, Phase
from stagequiz.services import question_bank
from stagequiz.services.question_bank import QuestionBankBuilder
from stagequiz.services.word_pool import DEFAULT_WORDS
from stagequiz.state import MISSING_QUESTION_MESSAGE, GameController


def _always_fallback(monkeypatch):
    def broken(stage, max_level=None):
        raise RuntimeError("generator down")

    monkeypatch.setattr(question_bank, "generate_problem", broken)


def test_select_mode_builds_batch(fast_settings):
    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, fast_settings), fast_settings)
        snap = await controller.select_mode(Mode.WORD)
        controller.close()
        return snap

    snap = asyncio.run(scenario())
    assert snap.phase == Phase.ACTIVE
    assert snap.total_questions == 3
    assert 0 < snap.time_remaining <= 3
    assert snap.stage == 1 and snap.score == 0


def test_correct_fallback_answer_scores_and_advances(fast_settings, monkeypatch):
    _always_fallback(monkeypatch)
    settings = fast_settings.model_copy(update={"question_time_limit": 1000})

    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, settings), settings)
        snap = await controller.select_mode(Mode.ARITHMETIC)
        assert snap.question == "1 + 1 = ?"
        assert controller.submit_answer("2") is True
        scored = controller.snapshot()
        await wait_for(lambda: controller.session.current_index == 1)
        advanced = controller.snapshot()
        controller.close()
        return scored, advanced

    scored, advanced = asyncio.run(scenario())
    assert scored.score == 10
    assert "Correct" in scored.message
    assert scored.phase == Phase.SCORING
    assert advanced.phase == Phase.ACTIVE
    assert advanced.score == 10
    assert 990 < advanced.time_remaining <= 1000


def test_timer_runs_out_and_moves_on(fast_settings):
    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, fast_settings), fast_settings)
        await controller.select_mode(Mode.ARITHMETIC)
        await wait_for(lambda: controller.session.phase == Phase.SCORING)
        timed_out = controller.snapshot()
        await wait_for(lambda: controller.session.current_index == 1)
        advanced = controller.snapshot()
        controller.close()
        return timed_out, advanced

    timed_out, advanced = asyncio.run(scenario())
    assert "Time's up" in timed_out.message
    assert timed_out.time_remaining == 0
    assert timed_out.score == 0
    assert advanced.score == 0
    assert advanced.phase == Phase.ACTIVE
    assert advanced.time_remaining > 0


def test_final_answer_advances_stage_with_new_batch(fast_settings, monkeypatch):
    _always_fallback(monkeypatch)
    settings = fast_settings.model_copy(update={"question_time_limit": 1000})

    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, settings), settings)
        await controller.select_mode(Mode.ARITHMETIC)
        for i in range(3):
            await wait_for(lambda: controller.session.phase == Phase.ACTIVE and controller.session.current_index == i)
            controller.submit_answer("2")
        await wait_for(lambda: controller.session.stage == 2 and controller.session.phase == Phase.ACTIVE)
        snap = controller.snapshot()
        controller.close()
        return snap

    snap = asyncio.run(scenario())
    assert snap.stage == 2
    assert snap.score == 30
    assert snap.total_questions == 3
    assert snap.question_index == 0


def test_generation_failure_enters_error(fast_settings):
    async def scenario():
        controller = GameController(QuestionBankBuilder([], fast_settings), fast_settings)
        snap = await controller.select_mode(Mode.WORD)
        menu = controller.back_to_menu()
        return snap, menu

    snap, menu = asyncio.run(scenario())
    assert snap.phase == Phase.ERROR
    assert snap.error
    assert menu.phase == Phase.MODE_SELECT and menu.error is None


def test_missing_question_regenerates(fast_settings):
    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, fast_settings), fast_settings)
        await controller.select_mode(Mode.WORD)
        controller.session.current_index = 42
        healing = controller.snapshot()
        await wait_for(lambda: controller.session.phase == Phase.ACTIVE)
        healed = controller.snapshot()
        controller.close()
        return healing, healed

    healing, healed = asyncio.run(scenario())
    assert healing.phase == Phase.LOADING
    assert healing.message == MISSING_QUESTION_MESSAGE
    assert healed.question_index == 0
    assert healed.question is not None
    assert healed.error is None


def test_back_to_menu_cancels_timers(fast_settings):
    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, fast_settings), fast_settings)
        await controller.select_mode(Mode.ARITHMETIC)
        controller.submit_answer("nope")
        snap = controller.back_to_menu()
        await asyncio.sleep(fast_settings.advance_delay_seconds * 5)
        return snap, controller.snapshot()

    snap, later = asyncio.run(scenario())
    assert snap.phase == Phase.MODE_SELECT
    assert later.phase == Phase.MODE_SELECT
    assert later.total_questions == 0


def test_mode_change_cancels_pending_advance(fast_settings):
    settings = fast_settings.model_copy(update={"question_time_limit": 1000})

    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, settings), settings)
        await controller.select_mode(Mode.ARITHMETIC)
        controller.submit_answer("nope")
        await controller.select_mode(Mode.WORD)
        await asyncio.sleep(settings.advance_delay_seconds * 3)
        snap = controller.snapshot()
        controller.close()
        return snap

    snap = asyncio.run(scenario())
    assert snap.mode == Mode.WORD
    assert snap.question_index == 0
    assert snap.phase == Phase.ACTIVE
    assert snap.score == 0


def test_repeated_recovery_reuses_load_task(fast_settings):
    async def scenario():
        controller = GameController(QuestionBankBuilder(DEFAULT_WORDS, fast_settings), fast_settings)
        await controller.select_mode(Mode.WORD)
        controller._recover_missing()
        first = controller.loading_task
        controller._recover_missing()
        second = controller.loading_task
        await wait_for(lambda: controller.session.phase == Phase.ACTIVE)
        snap = controller.snapshot()
        controller.close()
        return first, second, snap

    first, second, snap = asyncio.run(scenario())
    assert first is not None
    assert first is second
    assert snap.question_index == 0


class _SlowArithmeticBuilder(QuestionBankBuilder):
    """Arithmetic builds hang until cancelled and take a moment to unwind."""

    def __init__(self, settings):
        super().__init__(DEFAULT_WORDS, settings)
        self.events = []

    async def build_batch_async(self, mode, stage, count=None, used=None):
        self.events.append(("start", mode))
        if mode != Mode.ARITHMETIC:
            return await super().build_batch_async(mode, stage, count, used)
        try:
            await asyncio.sleep(10)
            return []
        finally:
            await asyncio.sleep(0.01)
            self.events.append(("resolved", mode))


def test_mode_change_waits_for_previous_build(fast_settings):
    builder = _SlowArithmeticBuilder(fast_settings)

    async def scenario():
        controller = GameController(builder, fast_settings)
        first = asyncio.create_task(controller.select_mode(Mode.ARITHMETIC))
        await wait_for(lambda: builder.events)
        snap = await controller.select_mode(Mode.WORD)
        await first
        controller.close()
        return snap

    snap = asyncio.run(scenario())
    assert builder.events == [
        ("start", Mode.ARITHMETIC),
        ("resolved", Mode.ARITHMETIC),
        ("start", Mode.WORD),
    ]
    assert snap.mode == Mode.WORD
    assert snap.phase == Phase.ACTIVE
