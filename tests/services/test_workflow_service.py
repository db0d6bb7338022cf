"""Tests for WorkflowService, the effect-running workflow driver."""

import asyncio
import dataclasses

import pytest

from src.core.config import GuideConfig, WorkflowConfig
from src.core.exceptions import (
    ChannelError,
    InvalidTransitionError,
    LLMError,
    LLMTimeoutError,
    ValidationError,
)
from src.domain.models.message import ChatMessage, Speaker
from src.domain.models.persona import ClarifyingQuestion
from src.domain.models.session import InterviewMode, Stage
from src.services.workflow.state_machine import ERROR_CHANNEL, ERROR_PERSONA, ERROR_SUMMARY
from src.services.workflow.workflow_service import WorkflowService
from tests.conftest import FakeSummarizer, GatedChannel


async def _to_mode_selection(workflow, research_config):
    await workflow.submit_initial_config(research_config)
    await workflow.confirm_profile()
    await workflow.generate_guide()
    return await workflow.confirm_guide()


class TestSetupToPreview:
    """Tests for the path from research brief to persona preview."""

    @pytest.mark.asyncio
    async def test_no_questions_goes_straight_to_preview(
        self, workflow, fakes, research_config, persona
    ):
        snapshot = await workflow.submit_initial_config(research_config)

        assert snapshot.stage == Stage.PREVIEW
        assert snapshot.persona == persona
        assert snapshot.grounding_sources[0].uri == "https://example.com/coffee"
        assert fakes.persona_generator.calls[0]["clarifications"] == []
        assert workflow.stage_history == [Stage.SETUP, Stage.RESEARCHING, Stage.PREVIEW]

    @pytest.mark.asyncio
    async def test_questions_stop_at_clarifying(self, workflow, fakes, research_config):
        fakes.analyzer.questions = [
            ClarifyingQuestion(question="年龄段？", options=["18-20", "21-23"])
        ]

        snapshot = await workflow.submit_initial_config(research_config)
        assert snapshot.stage == Stage.CLARIFYING
        assert fakes.persona_generator.calls == []

        snapshot = await workflow.submit_clarifications(["21-23"])
        assert snapshot.stage == Stage.PREVIEW
        assert fakes.persona_generator.calls[0]["clarifications"] == ["21-23"]

    @pytest.mark.asyncio
    async def test_analysis_failure_means_no_questions(self, workflow, fakes, research_config):
        fakes.analyzer.error = LLMError("analysis down")

        snapshot = await workflow.submit_initial_config(research_config)

        assert snapshot.stage == Stage.PREVIEW
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_persona_failure_returns_to_setup(self, workflow, fakes, research_config):
        fakes.persona_generator.error = LLMTimeoutError("timed out")

        snapshot = await workflow.submit_initial_config(research_config)

        assert snapshot.stage == Stage.SETUP
        assert snapshot.error == ERROR_PERSONA
        assert snapshot.config.industry == "咖啡机"
        assert snapshot.pending_task is None

    @pytest.mark.asyncio
    async def test_blank_clarification_rejected(self, workflow, fakes, research_config):
        fakes.analyzer.questions = [ClarifyingQuestion(question="年龄段？")]
        await workflow.submit_initial_config(research_config)

        with pytest.raises(ValidationError):
            await workflow.submit_clarifications([" "])

        assert workflow.session.stage == Stage.CLARIFYING
        assert fakes.persona_generator.calls == []

    @pytest.mark.asyncio
    async def test_reset_during_persona_discards_late_result(
        self, workflow, fakes, research_config
    ):
        fakes.persona_generator.gate = asyncio.Event()
        task = asyncio.create_task(workflow.submit_initial_config(research_config))
        while not fakes.persona_generator.calls:
            await asyncio.sleep(0)

        await workflow.reset()
        fakes.persona_generator.gate.set()
        await task

        assert workflow.session.stage == Stage.SETUP
        assert workflow.session.persona is None
        assert workflow.session.config is None


class TestGuide:
    """Tests for guide generation through the driver."""

    @pytest.mark.asyncio
    async def test_guide_generated_and_edited(self, workflow, fakes, research_config):
        await workflow.submit_initial_config(research_config)
        await workflow.confirm_profile()

        snapshot = await workflow.generate_guide(objectives="了解清洁痛点")
        assert snapshot.stage == Stage.GUIDE_REVIEW
        assert snapshot.discussion_guide == fakes.guide_generator.questions
        assert fakes.guide_generator.calls[0][2] == "了解清洁痛点"

        await workflow.add_guide_question("会考虑二手吗？")
        await workflow.edit_guide_question(0, "您家里有咖啡机吗？")
        await workflow.delete_guide_question(1)
        snapshot = await workflow.confirm_guide()

        assert snapshot.stage == Stage.MODE_SELECTION
        assert snapshot.discussion_guide == ["您家里有咖啡机吗？", "会考虑二手吗？"]

    @pytest.mark.asyncio
    async def test_guide_failure_uses_fallback(
        self, workflow, fakes, research_config, workflow_config
    ):
        fakes.guide_generator.error = LLMError("boom")
        await workflow.submit_initial_config(research_config)
        await workflow.confirm_profile()

        snapshot = await workflow.generate_guide()

        assert snapshot.stage == Stage.GUIDE_REVIEW
        assert snapshot.discussion_guide == workflow_config.guide.fallback_questions
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_guide_failure_without_fallback(
        self, collaborators, fakes, research_config, sleep
    ):
        config = WorkflowConfig(guide=GuideConfig(fallback_on_error=False))
        workflow = WorkflowService(collaborators, config=config, sleep=sleep)
        fakes.guide_generator.error = LLMError("boom")
        await workflow.submit_initial_config(research_config)
        await workflow.confirm_profile()

        snapshot = await workflow.generate_guide()

        assert snapshot.stage == Stage.GUIDE_INPUT
        assert snapshot.error is not None
        assert snapshot.persona is not None


class TestInterview:
    """Tests for the interview stage through the driver."""

    @pytest.mark.asyncio
    async def test_manual_interview_opens_with_self_introduction(
        self, workflow, fakes, research_config, workflow_config
    ):
        await _to_mode_selection(workflow, research_config)

        snapshot = await workflow.start_interview(InterviewMode.MANUAL)

        assert snapshot.stage == Stage.INTERVIEW
        assert fakes.channel.sent == [workflow_config.chat.opening_prompt]
        assert [m.text for m in snapshot.transcript] == ["回复1"]
        assert snapshot.transcript[0].speaker == Speaker.RESPONDENT

    @pytest.mark.asyncio
    async def test_send_message_appends_both_turns(self, workflow, research_config):
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview()

        reply = await workflow.send_message("你平时喝咖啡吗？")

        assert reply.text == "回复2"
        transcript = workflow.snapshot().transcript
        assert [m.speaker for m in transcript] == [
            Speaker.RESPONDENT,
            Speaker.INTERVIEWER,
            Speaker.RESPONDENT,
        ]

    @pytest.mark.asyncio
    async def test_auto_interview_completes_and_switches_to_manual(
        self, workflow, fakes, research_config
    ):
        fakes.moderator.script = ["你平时喝咖啡吗？"]
        await _to_mode_selection(workflow, research_config)

        await workflow.start_interview(InterviewMode.AUTO)
        await workflow.wait_interview_idle()

        snapshot = workflow.snapshot()
        assert [m.text for m in snapshot.transcript] == ["回复1", "你平时喝咖啡吗？", "回复2"]
        assert snapshot.transcript[1].automated is True
        assert snapshot.interview_mode == InterviewMode.MANUAL
        assert workflow.session.interview_mode == InterviewMode.MANUAL
        assert workflow.interview_status()["moderator_status"] == "done"

    @pytest.mark.asyncio
    async def test_channel_failure_stays_in_mode_selection(
        self, workflow, fakes, research_config
    ):
        fakes.channel_factory.error = LLMError("no session")
        await _to_mode_selection(workflow, research_config)

        snapshot = await workflow.start_interview()

        assert snapshot.stage == Stage.MODE_SELECTION
        assert snapshot.error == ERROR_CHANNEL
        assert workflow.interview is None

    @pytest.mark.asyncio
    async def test_send_message_without_interview(self, workflow):
        with pytest.raises(ChannelError):
            await workflow.send_message("hi")

    @pytest.mark.asyncio
    async def test_end_interview_summarizes_exact_transcript(
        self, workflow, fakes, research_config
    ):
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview()
        await workflow.send_message("你平时喝咖啡吗？")
        live = workflow.snapshot().transcript

        snapshot = await workflow.end_interview()

        assert snapshot.stage == Stage.SUMMARY
        assert snapshot.summary == fakes.summarizer.summary
        assert fakes.summarizer.calls[0]["transcript"] == live
        assert workflow.interview is None

    @pytest.mark.asyncio
    async def test_summary_failure_returns_to_interview(
        self, workflow, fakes, research_config
    ):
        fakes.summarizer.error = LLMError("summary down")
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview()
        await workflow.send_message("你平时喝咖啡吗？")

        snapshot = await workflow.end_interview()

        assert snapshot.stage == Stage.INTERVIEW
        assert snapshot.error == ERROR_SUMMARY
        assert len(snapshot.transcript) == 3

        reply = await workflow.send_message("还有补充吗？")
        assert reply is not None

    @pytest.mark.asyncio
    async def test_reply_landing_during_failed_summary_is_kept(
        self, collaborators, fakes, research_config, workflow_config, sleep
    ):
        channel = GatedChannel()
        fakes.channel_factory.channel = channel
        fakes.moderator.script = ["问题一", "问题二"]

        class ReleasingSummarizer(FakeSummarizer):
            async def summarize(self, persona, industry, transcript):
                channel.release()
                for _ in range(10):
                    await asyncio.sleep(0)
                return await super().summarize(persona, industry, transcript)

        summarizer = ReleasingSummarizer(error=LLMError("summary down"))
        workflow = WorkflowService(
            dataclasses.replace(collaborators, summarizer=summarizer),
            config=workflow_config,
            sleep=sleep,
        )
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview(InterviewMode.AUTO)
        while len(workflow.snapshot().transcript) < 2:
            await asyncio.sleep(0)

        snapshot = await workflow.end_interview()
        await workflow.wait_interview_idle()

        assert snapshot.stage == Stage.INTERVIEW
        assert [m.text for m in summarizer.calls[0]["transcript"]] == ["回复1", "问题一"]
        assert [m.text for m in workflow.snapshot().transcript] == [
            "回复1",
            "问题一",
            "回复2",
            "问题二",
            "回复3",
        ]

        await workflow.send_message("手动问题")
        speakers = [m.speaker for m in workflow.snapshot().transcript]
        assert speakers[-2:] == [Speaker.INTERVIEWER, Speaker.RESPONDENT]
        assert all(
            not (a == b == Speaker.INTERVIEWER) for a, b in zip(speakers, speakers[1:])
        )

    @pytest.mark.asyncio
    async def test_end_interview_with_supplied_transcript(
        self, workflow, fakes, research_config
    ):
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview()
        await workflow.send_message("你平时喝咖啡吗？")
        live = workflow.snapshot().transcript
        resent = [ChatMessage(speaker=m.speaker, text=m.text) for m in live]

        await workflow.end_interview(resent)

        assert [m.text for m in fakes.summarizer.calls[0]["transcript"]] == [
            m.text for m in resent
        ]

    @pytest.mark.asyncio
    async def test_supplied_transcript_must_match_live_one(
        self, workflow, fakes, research_config
    ):
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview()

        with pytest.raises(ValidationError):
            await workflow.end_interview(
                [ChatMessage(speaker=Speaker.RESPONDENT, text="只有一句")]
            )

        assert workflow.session.stage == Stage.INTERVIEW
        assert fakes.summarizer.calls == []
        assert await workflow.send_message("还在吗？") is not None

    @pytest.mark.asyncio
    async def test_failed_summary_keeps_supplied_transcript(
        self, workflow, fakes, research_config
    ):
        fakes.summarizer.error = LLMError("summary down")
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview()
        await workflow.send_message("你平时喝咖啡吗？")
        resent = [
            ChatMessage(speaker=m.speaker, text=m.text)
            for m in workflow.snapshot().transcript
        ]

        snapshot = await workflow.end_interview(resent)

        assert snapshot.stage == Stage.INTERVIEW
        assert [m.text for m in snapshot.transcript] == [m.text for m in resent]
        assert list(workflow.session.transcript) == snapshot.transcript

    @pytest.mark.asyncio
    async def test_reset_discards_interview(self, workflow, research_config):
        await _to_mode_selection(workflow, research_config)
        await workflow.start_interview()
        session_id = workflow.id

        snapshot = await workflow.reset()

        assert snapshot.stage == Stage.SETUP
        assert snapshot.id == session_id
        assert snapshot.transcript == []
        assert workflow.interview is None
        assert workflow.stage_history == [Stage.SETUP]

    @pytest.mark.asyncio
    async def test_operations_rejected_in_wrong_stage(self, workflow):
        with pytest.raises(InvalidTransitionError):
            await workflow.confirm_guide()
        with pytest.raises(InvalidTransitionError):
            await workflow.end_interview([])

    @pytest.mark.asyncio
    async def test_dismiss_error(self, workflow, fakes, research_config):
        fakes.persona_generator.error = LLMError("x")
        await workflow.submit_initial_config(research_config)

        snapshot = await workflow.dismiss_error()

        assert snapshot.error is None
        assert snapshot.stage == Stage.SETUP
