"""
Research workflow driver.

WorkflowService owns one ResearchSession. Each public operation feeds an
event through the pure state machine, runs the returned effects against
the collaborators, and feeds their outcomes back in until no effect is
left. While the interview stage is active it also owns the
InterviewTurnLoop, whose live transcript is overlaid on the session
snapshot.

Collaborator failures never escape: each effect maps a failure to a result
event (PersonaFailed, GuideFailed, ...), and the state machine decides the
rollback stage and the visible error. Requirement-analysis failures are
mapped to "no clarification needed". Guide failures are replaced by the
fallback guide when guide.fallback_on_error is set.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.core.exceptions import ChannelError, ResearchSystemError, ValidationError
from src.domain.models.message import ChatMessage
from src.domain.models.session import (
    InterviewMode,
    ResearchConfig,
    ResearchSession,
    Stage,
)
from src.llm.retry import Sleep
from src.services.interview.turn_loop import InterviewTurnLoop
from src.services.protocols import (
    IChannelFactory,
    IGuideGenerator,
    IModerator,
    IPersonaGenerator,
    IRequirementAnalyzer,
    ISummarizer,
)
from src.services.workflow.state_machine import (
    AddGuideQuestion,
    AnalyzeRequirements,
    ChannelFailed,
    ChannelOpened,
    ConfirmGuide,
    ConfirmProfile,
    DeleteGuideQuestion,
    DismissError,
    EditGuideQuestion,
    Effect,
    EndInterview,
    Event,
    GenerateGuide,
    GeneratePersona,
    GenerateSummary,
    GuideFailed,
    GuideGenerated,
    OpenChannel,
    PersonaFailed,
    PersonaGenerated,
    RequestGuide,
    RequirementsAnalyzed,
    Reset,
    StartInterview,
    SubmitClarifications,
    SubmitInitialConfig,
    SummaryFailed,
    SummaryGenerated,
    SwitchToManual,
    is_stale,
    transition,
)

log = structlog.get_logger(__name__)


def _turns(messages: Sequence[ChatMessage]) -> List[tuple]:
    return [(m.speaker, m.text) for m in messages]


@dataclass
class Collaborators:
    """Backend capabilities the workflow depends on."""

    analyzer: IRequirementAnalyzer
    persona_generator: IPersonaGenerator
    guide_generator: IGuideGenerator
    channel_factory: IChannelFactory
    moderator: IModerator
    summarizer: ISummarizer

    @classmethod
    def from_settings(cls, config: Optional[WorkflowConfig] = None) -> "Collaborators":
        """Build the LLM-backed collaborators from settings.

        Raises:
            ConfigurationError: If an LLM provider is not configured
        """
        from src.services.chat_channel import ChatChannelFactory
        from src.services.guide_service import GuideService
        from src.services.moderator_service import ModeratorService
        from src.services.persona_service import PersonaService
        from src.services.summary_service import SummaryService

        persona_service = PersonaService(config=config)
        return cls(
            analyzer=persona_service,
            persona_generator=persona_service,
            guide_generator=GuideService(config=config),
            channel_factory=ChatChannelFactory(config=config),
            moderator=ModeratorService(config=config),
            summarizer=SummaryService(config=config),
        )


class WorkflowService:
    """Drives one research session from setup to summary."""

    def __init__(
        self,
        collaborators: Collaborators,
        config: Optional[WorkflowConfig] = None,
        sleep: Sleep = asyncio.sleep,
        session: Optional[ResearchSession] = None,
    ):
        """Initialize the workflow.

        Args:
            collaborators: Backend capabilities
            config: Workflow configuration (defaults to workflow_config.yaml)
            sleep: Sleep handed to the interview loop for pacing/cooldown
            session: Starting session (a fresh one in SETUP if None)
        """
        self.collaborators = collaborators
        self.config = config or workflow_config
        self.sleep = sleep
        self.session = session or ResearchSession()
        self.stage_history: List[Stage] = [self.session.stage]
        self._loop: Optional[InterviewTurnLoop] = None
        self.log = log.bind(research_id=self.session.id)

    @property
    def id(self) -> str:
        return self.session.id

    @property
    def interview(self) -> Optional[InterviewTurnLoop]:
        return self._loop

    # -------------------------------------------------------------------------
    # Event processing
    # -------------------------------------------------------------------------

    def _commit(self, session: ResearchSession) -> None:
        if session.stage != self.session.stage:
            self.stage_history.append(session.stage)
            self.log.info(
                "stage_changed",
                from_stage=self.session.stage.value,
                to_stage=session.stage.value,
            )
        if session.error and session.error != self.session.error:
            self.log.warning("workflow_error", error=session.error, stage=session.stage.value)
        self.session = session

    async def dispatch(self, event: Event) -> ResearchSession:
        """Apply ``event`` and run effects until none remain.

        Raises:
            InvalidTransitionError: If the event is not allowed in the current stage
            ValidationError: If the event's payload is rejected
        """
        queue = deque([event])
        while queue:
            current = queue.popleft()
            before = self.session
            after, effects = transition(before, current)
            if is_stale(before, after, effects) and hasattr(current, "token"):
                self.log.info("stale_result_ignored", event=type(current).__name__)
                continue
            self._commit(after)
            for effect in effects:
                queue.append(await self._run_effect(effect))
        return self.snapshot()

    async def _run_effect(self, effect: Effect) -> Event:
        """Execute one collaborator request and turn its outcome into an event."""
        c = self.collaborators

        if isinstance(effect, AnalyzeRequirements):
            try:
                questions = await c.analyzer.analyze_requirements(
                    effect.industry, effect.target_audience
                )
            except Exception as e:
                self.log.warning("requirement_analysis_failed", error=str(e))
                questions = []
            return RequirementsAnalyzed(token=effect.token, questions=tuple(questions or ()))

        if isinstance(effect, GeneratePersona):
            try:
                persona, sources = await c.persona_generator.generate_persona(
                    effect.industry,
                    effect.target_audience,
                    effect.clarifications,
                    effect.reference_materials,
                )
            except Exception as e:
                self.log.error("persona_generation_failed", error=str(e))
                return PersonaFailed(token=effect.token, error=str(e))
            return PersonaGenerated(token=effect.token, persona=persona, sources=tuple(sources))

        if isinstance(effect, GenerateGuide):
            try:
                questions = await c.guide_generator.generate_guide(
                    effect.industry,
                    effect.persona,
                    effect.objectives,
                    effect.user_questions,
                )
            except Exception as e:
                if not self.config.guide.fallback_on_error:
                    self.log.error("guide_generation_failed", error=str(e))
                    return GuideFailed(token=effect.token, error=str(e))
                self.log.warning("guide_fallback_used", error=str(e))
                questions = self.config.guide.fallback_questions
            return GuideGenerated(token=effect.token, questions=tuple(questions))

        if isinstance(effect, OpenChannel):
            try:
                channel = await c.channel_factory.open_channel(effect.persona, effect.industry)
            except Exception as e:
                self.log.error("channel_open_failed", error=str(e))
                return ChannelFailed(token=effect.token, error=str(e))
            pending = self.session.pending_task
            if pending is not None and pending.token == effect.token:
                self._loop = InterviewTurnLoop(
                    channel=channel,
                    moderator=c.moderator,
                    persona=effect.persona,
                    guide=self.session.discussion_guide,
                    mode=effect.mode,
                    config=self.config,
                    sleep=self.sleep,
                    on_mode_change=self._on_loop_mode_change,
                )
            return ChannelOpened(token=effect.token, mode=effect.mode)

        if isinstance(effect, GenerateSummary):
            try:
                summary = await c.summarizer.summarize(
                    effect.persona, effect.industry, effect.transcript
                )
            except Exception as e:
                self.log.error("summary_generation_failed", error=str(e))
                return SummaryFailed(token=effect.token, error=str(e))
            return SummaryGenerated(token=effect.token, summary=summary)

        raise TypeError(f"Unknown effect: {type(effect).__name__}")

    def _on_loop_mode_change(self, mode: InterviewMode) -> None:
        if mode == InterviewMode.MANUAL and self.session.stage == Stage.INTERVIEW:
            after, _ = transition(self.session, SwitchToManual())
            self._commit(after)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def submit_initial_config(self, config: ResearchConfig) -> ResearchSession:
        self.log.info(
            "research_started",
            industry=config.industry,
            material_count=len(config.reference_materials),
        )
        return await self.dispatch(SubmitInitialConfig(config=config))

    async def submit_clarifications(self, answers: Sequence[str]) -> ResearchSession:
        return await self.dispatch(SubmitClarifications(answers=tuple(answers)))

    async def confirm_profile(self) -> ResearchSession:
        return await self.dispatch(ConfirmProfile())

    async def generate_guide(
        self,
        objectives: Optional[str] = None,
        user_questions: Optional[str] = None,
    ) -> ResearchSession:
        return await self.dispatch(
            RequestGuide(objectives=objectives, user_questions=user_questions)
        )

    async def add_guide_question(self, text: str = "") -> ResearchSession:
        return await self.dispatch(AddGuideQuestion(text=text))

    async def edit_guide_question(self, index: int, text: str) -> ResearchSession:
        return await self.dispatch(EditGuideQuestion(index=index, text=text))

    async def delete_guide_question(self, index: int) -> ResearchSession:
        return await self.dispatch(DeleteGuideQuestion(index=index))

    async def confirm_guide(self, guide: Optional[Sequence[str]] = None) -> ResearchSession:
        return await self.dispatch(
            ConfirmGuide(guide=tuple(guide) if guide is not None else None)
        )

    async def start_interview(
        self, mode: InterviewMode = InterviewMode.MANUAL
    ) -> ResearchSession:
        """Open the channel and run the scripted opening turn.

        In Auto mode the moderator takes over in the background once the
        opening reply is in.
        """
        snapshot = await self.dispatch(StartInterview(mode=mode))
        if self.session.stage == Stage.INTERVIEW and self._loop is not None:
            await self._loop.open()
            snapshot = self.snapshot()
        return snapshot

    def _require_loop(self) -> InterviewTurnLoop:
        if self.session.stage != Stage.INTERVIEW or self._loop is None:
            raise ChannelError(
                f"No interview in progress (stage '{self.session.stage.value}')"
            )
        return self._loop

    async def send_message(self, text: str) -> Optional[ChatMessage]:
        """Send a manual interviewer message; returns the respondent's reply.

        Raises:
            ChannelError: If no interview is in progress
            ValidationError: If the text is blank
            TurnConflictError: If a reply or moderator decision is outstanding
        """
        return await self._require_loop().send_manual(text)

    def switch_to_manual(self) -> ResearchSession:
        """Hand the interview to the user; takes effect immediately."""
        self._require_loop().switch_to_manual()
        return self.snapshot()

    async def end_interview(
        self, transcript: Optional[Sequence[ChatMessage]] = None
    ) -> ResearchSession:
        """End the interview and generate the summary.

        While the turn loop is live its transcript is authoritative: a
        supplied transcript must carry the same turns, so a failed summary
        hands back exactly the transcript the interview resumes from.

        Args:
            transcript: Transcript to summarize (the live transcript if None)

        Raises:
            ValidationError: If a supplied transcript differs from the live one
        """
        loop = self._loop
        if loop is not None:
            live = loop.messages
            if transcript is not None and _turns(transcript) != _turns(live):
                raise ValidationError(
                    "Supplied transcript does not match the live interview transcript"
                )
            transcript = live
        elif transcript is None:
            transcript = self.session.transcript

        if loop is not None:
            loop.pause()
        try:
            snapshot = await self.dispatch(EndInterview(transcript=tuple(transcript)))
        except ResearchSystemError:
            if loop is not None:
                loop.resume()
            raise

        if self.session.stage == Stage.SUMMARY and loop is not None:
            await loop.close()
            self._loop = None
        elif self.session.stage == Stage.INTERVIEW and loop is not None:
            loop.resume()
        return snapshot

    async def reset(self) -> ResearchSession:
        """Discard everything and go back to setup."""
        if self._loop is not None:
            await self._loop.close()
            self._loop = None
        snapshot = await self.dispatch(Reset())
        self.stage_history = [self.session.stage]
        self.log.info("research_reset")
        return snapshot

    async def dismiss_error(self) -> ResearchSession:
        return await self.dispatch(DismissError())

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def snapshot(self) -> ResearchSession:
        """Current session, with the live transcript while interviewing."""
        if self.session.stage == Stage.INTERVIEW and self._loop is not None:
            return self.session.model_copy(
                update={
                    "transcript": self._loop.messages,
                    "interview_mode": self._loop.mode,
                }
            )
        return self.session

    def interview_status(self) -> Optional[Dict[str, Any]]:
        if self._loop is None:
            return None
        return {
            "mode": self._loop.mode.value,
            "turn_state": self._loop.turn_state.value,
            "moderator_status": self._loop.moderator_status.value,
            "message_count": len(self._loop.transcript),
        }

    async def wait_interview_idle(self) -> None:
        """Wait for background interview turns (used by tests and the API)."""
        if self._loop is not None:
            await self._loop.wait_idle()
