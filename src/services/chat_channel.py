"""Respondent delivery channel.

A ChatChannel is a multi-turn conversation with the chat model, framed by
a system instruction that makes the model role-play the persona. One
channel exists per interview; both the user and the automated moderator
send through it, one message at a time.
"""

import asyncio
from typing import List, Optional

import structlog

from src.core.config import WorkflowConfig, workflow_config
from src.domain.models.persona import PersonaProfile
from src.llm.client import LLMClient, LLMMessage, get_llm_client
from src.llm.prompts.respondent import get_respondent_system_prompt

log = structlog.get_logger(__name__)


class ChatChannel:
    """Stateful conversation with the simulated respondent.

    History only grows when a send succeeds, so a failed turn can be
    retried without leaving a dangling user message.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        system_instruction: str,
        empty_reply: str = "...",
    ):
        self.llm_client = llm_client
        self.system_instruction = system_instruction
        self.empty_reply = empty_reply
        self._history: List[LLMMessage] = []
        self._lock = asyncio.Lock()

    @property
    def history(self) -> List[LLMMessage]:
        return list(self._history)

    async def send(self, text: str) -> str:
        """Send one message and return the respondent's reply.

        Raises:
            LLMError: If the chat call fails
        """
        async with self._lock:
            user_message = LLMMessage.user(text)
            response = await self.llm_client.generate(
                self._history + [user_message],
                system=self.system_instruction,
            )
            reply = (response.content or "").strip() or self.empty_reply

            self._history.append(user_message)
            self._history.append(LLMMessage.model(reply))
            return reply


class ChatChannelFactory:
    """Opens respondent channels framed by persona and industry."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        config: Optional[WorkflowConfig] = None,
    ):
        self.llm_client = llm_client
        self.config = config or workflow_config

    async def open_channel(self, persona: PersonaProfile, industry: str) -> ChatChannel:
        """Create a channel for a new interview.

        Raises:
            ConfigurationError: If no chat client can be configured
        """
        client = self.llm_client or get_llm_client("chat")
        channel = ChatChannel(
            llm_client=client,
            system_instruction=get_respondent_system_prompt(persona, industry),
            empty_reply=self.config.chat.empty_reply,
        )
        log.info("chat_channel_opened", persona=persona.name, industry=industry)
        return channel
