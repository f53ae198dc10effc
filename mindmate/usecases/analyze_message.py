from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol, Sequence

from mindmate.domain.fallback import FallbackResponder
from mindmate.domain.models import ROLE_ASSISTANT, ROLE_USER, AnalysisResult, ConversationTurn
from mindmate.domain.normalizer import normalize_response, salvage_reply
from mindmate.exceptions import TransportError
from mindmate.infra.prompts import load_system_prompt

logger = logging.getLogger(__name__)


class ChatClient(Protocol):
    def complete(self, messages: List[Dict[str, str]]) -> str: ...


_API_ROLES = {
    ROLE_USER: "user",
    ROLE_ASSISTANT: "assistant",
    "model": "assistant",
    "bot": "assistant",
}


def build_messages(
    system_prompt: str,
    history: Sequence[ConversationTurn],
    message: str,
    history_limit: int = 10,
) -> List[Dict[str, str]]:
    """system instruction + last `history_limit` turns + the current message."""
    messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]

    recent = list(history)[-history_limit:] if history_limit > 0 else []
    for turn in recent:
        if not turn.text:
            continue
        messages.append({"role": _API_ROLES.get(turn.role, "user"), "content": turn.text})

    messages.append({"role": "user", "content": message})
    return messages


class ConversationAnalyzer:
    """One AnalysisResult per user message; every failure ends in the fallback."""

    def __init__(
        self,
        chat_client: Optional[ChatClient],
        fallback: Optional[FallbackResponder] = None,
        system_prompt: Optional[str] = None,
        history_limit: int = 10,
    ):
        self.chat_client = chat_client
        self.fallback = fallback or FallbackResponder()
        self._system_prompt = system_prompt
        self.history_limit = history_limit

    @property
    def system_prompt(self) -> str:
        if self._system_prompt is None:
            self._system_prompt = load_system_prompt()
        return self._system_prompt

    def analyze(self, message: str, history: Sequence[ConversationTurn] = ()) -> AnalysisResult:
        # 1) offline mode: no client configured
        if self.chat_client is None:
            return self.fallback.respond(message)

        # 2) model call
        try:
            messages = build_messages(self.system_prompt, history, message, self.history_limit)
            raw_text = self.chat_client.complete(messages)
        except TransportError as e:
            logger.warning("Model call failed, using fallback reply: %s", e)
            return self.fallback.respond(message)
        except Exception:
            logger.exception("Unexpected error during model call, using fallback reply")
            return self.fallback.respond(message)

        # 3) normalize, then salvage, then fallback
        try:
            outcome = normalize_response(raw_text)
            if outcome.ok:
                return outcome.result

            logger.warning("Model response rejected (%s): %s", type(outcome.error).__name__, outcome.error)

            salvaged = salvage_reply(raw_text)
            if salvaged is not None:
                logger.info("Recovered reply from malformed model response")
                return salvaged
        except Exception:
            logger.exception("Unexpected error while reading model response, using fallback reply")

        return self.fallback.respond(message)
