"""
Interview turn loop.

Drives the conversation between the respondent (the persona behind a
ChatChannel) and the interviewer (the user, or the automated moderator in
Auto mode) once the interview stage is active.

Turn ownership is a single enum:

    IDLE                 nobody is waiting; a manual send is allowed
    AWAITING_RESPONDENT  a message was sent; its reply is outstanding
    AWAITING_MODERATOR   the moderator is deciding the next question

A moderator turn is scheduled only on the transition into
AWAITING_MODERATOR, which happens when the transcript changes, the last
message is the respondent's, the loop is idle and mode is Auto. At most one
request is outstanding on the channel and at most one moderator turn is in
flight.

Moderator failures:
- rate limit: cooldown, then the same turn is retried with the same inputs
  (bounded by max_rate_limit_retries)
- anything else: back to IDLE with no re-trigger; the loop stalls until a
  manual message changes the transcript
"""

import asyncio
from enum import Enum
from typing import Callable, Coroutine, List, Optional, Sequence, Set

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.core.exceptions import TurnConflictError, ValidationError
from src.domain.models.message import ChatMessage, Speaker, Transcript
from src.domain.models.persona import PersonaProfile
from src.domain.models.session import InterviewMode
from src.llm.retry import Sleep, is_rate_limit_error
from src.services.protocols import IChatChannel, IModerator

log = structlog.get_logger(__name__)


class TurnState(str, Enum):
    """Who the interview is waiting on."""

    IDLE = "idle"
    AWAITING_RESPONDENT = "awaiting_respondent"
    AWAITING_MODERATOR = "awaiting_moderator"


class ModeratorStatus(str, Enum):
    """Moderator status as shown to the observer."""

    IDLE = "idle"
    THINKING = "thinking"
    DONE = "done"


class InterviewTurnLoop:
    """One loop per interview; owns the live transcript."""

    def __init__(
        self,
        channel: IChatChannel,
        moderator: IModerator,
        persona: PersonaProfile,
        guide: Sequence[str],
        mode: InterviewMode = InterviewMode.MANUAL,
        config: Optional[WorkflowConfig] = None,
        sleep: Sleep = asyncio.sleep,
        on_mode_change: Optional[Callable[[InterviewMode], None]] = None,
    ):
        """Initialize the loop.

        Args:
            channel: Delivery channel to the respondent
            moderator: Automated interviewer used in Auto mode
            persona: Interviewed persona
            guide: Confirmed discussion guide (not modified)
            mode: Initial interview mode
            config: Workflow configuration (pacing, cooldown, replies)
            sleep: Sleep used for pacing and cooldown delays
            on_mode_change: Called when the loop downgrades to Manual
        """
        self.channel = channel
        self.moderator = moderator
        self.persona = persona
        self.guide = tuple(guide)
        self.config = config or workflow_config
        self.sleep = sleep
        self.on_mode_change = on_mode_change

        self.transcript = Transcript()
        self._mode = mode
        self._turn_state = TurnState.IDLE
        self._completed = False
        self._opened = False
        self._paused = False
        self._closed = False
        self._held_reply: Optional[ChatMessage] = None
        self._send_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def mode(self) -> InterviewMode:
        return self._mode

    @property
    def turn_state(self) -> TurnState:
        return self._turn_state

    @property
    def moderator_status(self) -> ModeratorStatus:
        if self._completed:
            return ModeratorStatus.DONE
        if self._turn_state == TurnState.AWAITING_MODERATOR:
            return ModeratorStatus.THINKING
        return ModeratorStatus.IDLE

    @property
    def messages(self) -> List[ChatMessage]:
        return self.transcript.messages

    @property
    def is_active(self) -> bool:
        return not (self._paused or self._closed)

    def _set_turn_state(self, state: TurnState) -> None:
        if state == self._turn_state:
            return
        self._turn_state = state
        if state == TurnState.AWAITING_MODERATOR:
            self._spawn(self._run_moderator_turn())

    def _should_moderate(self) -> bool:
        last = self.transcript.last
        return (
            self._mode == InterviewMode.AUTO
            and not self._completed
            and self.is_active
            and self._turn_state == TurnState.IDLE
            and last is not None
            and last.is_respondent
        )

    def _on_transcript_change(self) -> None:
        if self._should_moderate():
            self._set_turn_state(TurnState.AWAITING_MODERATOR)

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> Optional[ChatMessage]:
        """Ask the respondent to introduce themselves; runs once per interview.

        The opening prompt itself is not part of the transcript. A failed
        opening is logged and leaves the transcript empty.
        """
        if self._opened or not self.is_active:
            return None
        self._opened = True

        log.info("interview_opening", persona=self.persona.name, mode=self._mode.value)
        return await self._deliver(self.config.chat.opening_prompt, opening=True)

    def pause(self) -> None:
        """Stop consuming results while the interview is being summarized.

        A respondent reply that lands while paused is held and appended on
        resume, so the transcript never ends on an unanswered question.
        """
        self._paused = True

    def resume(self) -> None:
        """Continue after a failed summary; re-evaluates the moderator trigger."""
        if self._closed:
            return
        self._paused = False
        held, self._held_reply = self._held_reply, None
        if held is not None:
            self._accept_reply(held)
        else:
            self._on_transcript_change()

    async def close(self) -> None:
        """Discard the loop, cancelling any background work."""
        self._closed = True
        self._held_reply = None
        tasks = [t for t in self._tasks if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.debug("interview_loop_closed", cancelled=len(tasks))

    async def wait_idle(self) -> None:
        """Wait until no background turn is running."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Mode
    # -------------------------------------------------------------------------

    def switch_to_manual(self, reason: str = "user_override") -> None:
        """Downgrade to Manual; an in-flight moderator turn still completes."""
        if self._mode == InterviewMode.MANUAL:
            return
        self._mode = InterviewMode.MANUAL
        log.info("interview_mode_switched", mode=self._mode.value, reason=reason)
        if self.on_mode_change is not None:
            self.on_mode_change(self._mode)

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def send_manual(self, text: str) -> Optional[ChatMessage]:
        """Send the user's message and wait for the respondent's reply.

        Returns:
            The respondent message (a placeholder if the channel failed), or
            None if the interview was paused or closed while the reply was
            outstanding (a paused reply is appended on resume)

        Raises:
            ValidationError: If the text is blank
            TurnConflictError: If another turn is outstanding or the loop is
                not active
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message must not be blank")
        if not self.is_active:
            raise TurnConflictError("Interview is not accepting messages")
        if self._turn_state != TurnState.IDLE:
            raise TurnConflictError(
                f"Cannot send while {self._turn_state.value.replace('_', ' ')}"
            )

        if self._mode == InterviewMode.AUTO:
            self.switch_to_manual(reason="manual_message")

        self.transcript.append(ChatMessage(speaker=Speaker.INTERVIEWER, text=text))
        return await self._deliver(text)

    async def _deliver(self, text: str, opening: bool = False) -> Optional[ChatMessage]:
        """Send ``text`` to the respondent and append the reply."""
        self._set_turn_state(TurnState.AWAITING_RESPONDENT)
        async with self._send_lock:
            try:
                reply = await self.channel.send(text)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if opening:
                    log.error("interview_opening_failed", error=str(e))
                    self._set_turn_state(TurnState.IDLE)
                    return None
                log.warning("respondent_turn_failed", error=str(e))
                reply = self.config.chat.placeholder_reply

        if opening and reply.strip() in ("", self.config.chat.empty_reply):
            reply = self.config.chat.opening_fallback

        message = ChatMessage(speaker=Speaker.RESPONDENT, text=reply)
        if self._closed:
            log.debug("respondent_reply_discarded", reason="interview_closed")
            self._set_turn_state(TurnState.IDLE)
            return None
        if self._paused:
            # Stays AWAITING_RESPONDENT until resume() applies it
            log.debug("respondent_reply_held", reason="interview_paused")
            self._held_reply = message
            return None
        return self._accept_reply(message)

    def _accept_reply(self, message: ChatMessage) -> ChatMessage:
        self.transcript.append(message)
        self._set_turn_state(TurnState.IDLE)
        self._on_transcript_change()
        return message

    async def _run_moderator_turn(self) -> None:
        """Pacing delay, moderator decision, then deliver the question."""
        snapshot = self.transcript.messages
        cfg = self.config.moderator
        retries = 0

        while True:
            await self.sleep(cfg.pacing_delay)
            try:
                question = await self.moderator.next_question(
                    snapshot, self.guide, self.persona
                )
                break
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if is_rate_limit_error(e) and retries < cfg.max_rate_limit_retries:
                    retries += 1
                    log.warning(
                        "moderator_rate_limited",
                        attempt=retries,
                        max_retries=cfg.max_rate_limit_retries,
                        cooldown_seconds=cfg.rate_limit_cooldown,
                    )
                    await self.sleep(cfg.rate_limit_cooldown)
                    continue
                log.error(
                    "moderator_turn_failed",
                    error=str(e),
                    rate_limited=is_rate_limit_error(e),
                    retries=retries,
                )
                self._set_turn_state(TurnState.IDLE)
                return

        if not self.is_active:
            log.debug("moderator_result_discarded", reason="interview_inactive")
            self._set_turn_state(TurnState.IDLE)
            return

        if question is None:
            self._completed = True
            self._set_turn_state(TurnState.IDLE)
            log.info("interview_complete", messages=len(self.transcript))
            self.switch_to_manual(reason="interview_complete")
            return

        self.transcript.append(
            ChatMessage(speaker=Speaker.INTERVIEWER, text=question, automated=True)
        )
        log.info("moderator_asked", turn=len(self.transcript))
        await self._deliver(question)
