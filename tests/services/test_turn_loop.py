"""Tests for the interview turn loop."""

import asyncio

import pytest

from src.core.exceptions import LLMError, LLMRateLimitError, TurnConflictError, ValidationError
from src.domain.models.message import Speaker
from src.domain.models.session import InterviewMode
from src.services.interview import InterviewTurnLoop, ModeratorStatus, TurnState
from tests.conftest import FakeChannel, FakeModerator, GatedChannel


class GatedModerator(FakeModerator):
    def __init__(self, script=None):
        super().__init__(script)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def next_question(self, transcript, guide, persona):
        self.entered.set()
        await self.gate.wait()
        return await super().next_question(transcript, guide, persona)


def _make_loop(persona, workflow_config, sleep, channel=None, moderator=None, **kwargs):
    return InterviewTurnLoop(
        channel=channel or FakeChannel(),
        moderator=moderator or FakeModerator(),
        persona=persona,
        guide=["您目前用什么咖啡机？", "最大的困扰是什么？"],
        config=workflow_config,
        sleep=sleep,
        **kwargs,
    )


class TestOpening:
    """Tests for the scripted opening turn."""

    @pytest.mark.asyncio
    async def test_opening_runs_once(self, persona, workflow_config, sleep):
        channel = FakeChannel(["大家好，我是小陈"])
        loop = _make_loop(persona, workflow_config, sleep, channel=channel)

        first = await loop.open()
        second = await loop.open()

        assert first.text == "大家好，我是小陈"
        assert second is None
        assert channel.sent == [workflow_config.chat.opening_prompt]
        assert [m.speaker for m in loop.messages] == [Speaker.RESPONDENT]

    @pytest.mark.asyncio
    async def test_opening_failure_leaves_transcript_empty(
        self, persona, workflow_config, sleep
    ):
        loop = _make_loop(
            persona, workflow_config, sleep, channel=FakeChannel([LLMError("down")])
        )

        assert await loop.open() is None
        assert loop.messages == []
        assert loop.turn_state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_empty_opening_uses_greeting(self, persona, workflow_config, sleep):
        channel = FakeChannel([workflow_config.chat.empty_reply])
        loop = _make_loop(persona, workflow_config, sleep, channel=channel)

        opening = await loop.open()

        assert opening.text == workflow_config.chat.opening_fallback == "你好。"
        reply = await loop.send_manual("你好")
        assert reply.text == "回复2"


class TestManualTurns:
    """Tests for user-driven turns."""

    @pytest.mark.asyncio
    async def test_send_appends_question_and_reply(self, persona, workflow_config, sleep):
        loop = _make_loop(persona, workflow_config, sleep)
        await loop.open()

        reply = await loop.send_manual("  你平时喝咖啡吗？ ")

        assert reply.text == "回复2"
        texts = [m.text for m in loop.messages]
        assert texts == ["回复1", "你平时喝咖啡吗？", "回复2"]
        assert loop.messages[1].automated is False
        assert loop.turn_state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_channel_failure_gives_placeholder(self, persona, workflow_config, sleep):
        channel = FakeChannel(["你好", LLMError("network")])
        loop = _make_loop(persona, workflow_config, sleep, channel=channel)
        await loop.open()

        reply = await loop.send_manual("在吗？")

        assert reply.text == workflow_config.chat.placeholder_reply
        assert reply.speaker == Speaker.RESPONDENT
        assert loop.turn_state == TurnState.IDLE

    @pytest.mark.asyncio
    async def test_blank_message_rejected(self, persona, workflow_config, sleep):
        loop = _make_loop(persona, workflow_config, sleep)
        with pytest.raises(ValidationError):
            await loop.send_manual("   ")

    @pytest.mark.asyncio
    async def test_send_while_awaiting_reply_conflicts(self, persona, workflow_config, sleep):
        channel = GatedChannel()
        loop = _make_loop(persona, workflow_config, sleep, channel=channel)
        await loop.open()

        pending = asyncio.create_task(loop.send_manual("第一个问题"))
        await asyncio.sleep(0)
        assert loop.turn_state == TurnState.AWAITING_RESPONDENT

        with pytest.raises(TurnConflictError):
            await loop.send_manual("第二个问题")

        channel.release()
        await pending
        assert len(loop.messages) == 3

    @pytest.mark.asyncio
    async def test_reply_held_while_paused_and_applied_on_resume(
        self, persona, workflow_config, sleep
    ):
        channel = GatedChannel()
        loop = _make_loop(persona, workflow_config, sleep, channel=channel)
        await loop.open()

        pending = asyncio.create_task(loop.send_manual("最后一个问题"))
        await asyncio.sleep(0)
        loop.pause()
        channel.release()

        assert await pending is None
        assert [m.speaker for m in loop.messages] == [Speaker.RESPONDENT, Speaker.INTERVIEWER]
        with pytest.raises(TurnConflictError):
            await loop.send_manual("还在吗？")

        loop.resume()

        assert [m.text for m in loop.messages] == ["回复1", "最后一个问题", "回复2"]
        assert loop.turn_state == TurnState.IDLE
        reply = await loop.send_manual("还在吗？")
        assert reply.text == "回复3"

    @pytest.mark.asyncio
    async def test_reply_discarded_after_close(self, persona, workflow_config, sleep):
        channel = GatedChannel()
        loop = _make_loop(persona, workflow_config, sleep, channel=channel)
        await loop.open()

        pending = asyncio.create_task(loop.send_manual("最后一个问题"))
        await asyncio.sleep(0)
        loop.pause()
        await loop.close()
        channel.release()

        assert await pending is None
        loop.resume()
        assert [m.speaker for m in loop.messages] == [Speaker.RESPONDENT, Speaker.INTERVIEWER]


class TestAutoMode:
    """Tests for moderator-driven turns."""

    @pytest.mark.asyncio
    async def test_moderator_alternates_with_respondent(
        self, persona, workflow_config, sleep
    ):
        moderator = FakeModerator(["问题一", "问题二"])
        loop = _make_loop(
            persona, workflow_config, sleep, moderator=moderator, mode=InterviewMode.AUTO
        )

        await loop.open()
        await loop.wait_idle()

        messages = loop.messages
        assert [m.text for m in messages] == ["回复1", "问题一", "回复2", "问题二", "回复3"]
        assert all(m.automated for m in messages if m.speaker == Speaker.INTERVIEWER)
        # Every moderator decision saw a transcript ending with the respondent
        assert all(call["transcript"][-1].is_respondent for call in moderator.calls)
        assert len(moderator.calls) == 3
        assert sleep.calls == [3, 3, 3]

    @pytest.mark.asyncio
    async def test_completion_switches_to_manual(self, persona, workflow_config, sleep):
        changes = []
        loop = _make_loop(
            persona,
            workflow_config,
            sleep,
            moderator=FakeModerator([None]),
            mode=InterviewMode.AUTO,
            on_mode_change=changes.append,
        )

        await loop.open()
        await loop.wait_idle()

        assert loop.mode == InterviewMode.MANUAL
        assert loop.moderator_status == ModeratorStatus.DONE
        assert changes == [InterviewMode.MANUAL]
        assert len(loop.messages) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_cools_down_and_retries_same_turn(
        self, persona, workflow_config, sleep
    ):
        moderator = FakeModerator(
            [LLMRateLimitError("429"), LLMRateLimitError("429"), "问题一", None]
        )
        loop = _make_loop(
            persona, workflow_config, sleep, moderator=moderator, mode=InterviewMode.AUTO
        )

        await loop.open()
        await loop.wait_idle()

        assert sleep.calls == [3, 5, 3, 5, 3, 3]
        assert moderator.calls[0]["transcript"] == moderator.calls[2]["transcript"]
        assert [m.text for m in loop.messages] == ["回复1", "问题一", "回复2"]
        assert loop.moderator_status == ModeratorStatus.DONE

    @pytest.mark.asyncio
    async def test_rate_limit_retries_are_bounded(self, persona, workflow_config, sleep):
        moderator = FakeModerator([LLMRateLimitError("429")] * 10)
        loop = _make_loop(
            persona, workflow_config, sleep, moderator=moderator, mode=InterviewMode.AUTO
        )

        await loop.open()
        await loop.wait_idle()

        assert len(moderator.calls) == workflow_config.moderator.max_rate_limit_retries + 1
        assert loop.turn_state == TurnState.IDLE
        assert loop.mode == InterviewMode.AUTO

    @pytest.mark.asyncio
    async def test_other_failure_stalls_without_retry(self, persona, workflow_config, sleep):
        moderator = FakeModerator([LLMError("bad request")])
        loop = _make_loop(
            persona, workflow_config, sleep, moderator=moderator, mode=InterviewMode.AUTO
        )

        await loop.open()
        await loop.wait_idle()

        assert len(moderator.calls) == 1
        assert sleep.calls == [3]
        assert loop.turn_state == TurnState.IDLE
        assert loop.moderator_status == ModeratorStatus.IDLE
        assert len(loop.messages) == 1

    @pytest.mark.asyncio
    async def test_manual_send_rejected_while_moderator_thinking(
        self, persona, workflow_config, sleep
    ):
        moderator = GatedModerator(["问题一"])
        loop = _make_loop(
            persona, workflow_config, sleep, moderator=moderator, mode=InterviewMode.AUTO
        )
        await loop.open()
        await moderator.entered.wait()

        assert loop.moderator_status == ModeratorStatus.THINKING
        with pytest.raises(TurnConflictError):
            await loop.send_manual("我来问")

        await loop.close()

    @pytest.mark.asyncio
    async def test_override_lets_in_flight_turn_finish(self, persona, workflow_config, sleep):
        moderator = GatedModerator(["问题一", "问题二"])
        loop = _make_loop(
            persona, workflow_config, sleep, moderator=moderator, mode=InterviewMode.AUTO
        )
        await loop.open()
        await moderator.entered.wait()

        loop.switch_to_manual()
        moderator.gate.set()
        await loop.wait_idle()

        assert loop.mode == InterviewMode.MANUAL
        assert [m.text for m in loop.messages] == ["回复1", "问题一", "回复2"]
        assert len(moderator.calls) == 1

        reply = await loop.send_manual("我接着问")
        assert reply.text == "回复3"

    @pytest.mark.asyncio
    async def test_manual_send_in_auto_mode_switches_to_manual(
        self, persona, workflow_config, sleep
    ):
        loop = _make_loop(
            persona,
            workflow_config,
            sleep,
            channel=FakeChannel([LLMError("down")]),
            mode=InterviewMode.AUTO,
        )
        await loop.open()

        await loop.send_manual("你好")
        await loop.wait_idle()

        assert loop.mode == InterviewMode.MANUAL
        assert len(loop.messages) == 2

    @pytest.mark.asyncio
    async def test_close_cancels_moderator_turn(self, persona, workflow_config, sleep):
        moderator = GatedModerator(["问题一"])
        loop = _make_loop(
            persona, workflow_config, sleep, moderator=moderator, mode=InterviewMode.AUTO
        )
        await loop.open()
        await moderator.entered.wait()

        await loop.close()

        assert not loop.is_active
        assert len(loop.messages) == 1
