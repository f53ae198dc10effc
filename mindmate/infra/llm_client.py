# mindmate/infra/llm_client.py

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from together import Together

from mindmate.core.config import DEFAULT_CHAT_MODEL, Settings
from mindmate.exceptions import ConfigError, TransportError
from mindmate.infra.paths import KEY_PATH

logger = logging.getLogger(__name__)

# Fixed sampling parameters for every chat turn
DEFAULT_SAMPLING: Dict[str, Any] = {
    "temperature": 0.2,
    "top_p": 0.9,
    "presence_penalty": 0,
    "frequency_penalty": 1,
    "stream": False,
}


def load_chat_api_key() -> str:
    """
    Load the chat API key.
    1st: CHAT_API_KEY (or TOGETHER_API_KEY) environment variable
    2nd: mindmate/conf/key-chat-api.txt
    Raises ConfigError when neither is set.
    """
    for name in ("CHAT_API_KEY", "TOGETHER_API_KEY"):
        key = os.getenv(name)
        if key and key.strip():
            return key.strip()

    if KEY_PATH.exists():
        content = KEY_PATH.read_text(encoding="utf-8").strip()
        if content:
            return content

    raise ConfigError(
        "Chat API key not found. "
        "Set CHAT_API_KEY (or TOGETHER_API_KEY) or write it to mindmate/conf/key-chat-api.txt."
    )


def _message_text(content: Any) -> str:
    # some SDK versions return content as a list of parts
    if isinstance(content, list):
        merged: list[str] = []
        for part in content:
            if isinstance(part, dict):
                # {"type": "text", "text": "..."}
                text = part.get("text")
                if text:
                    merged.append(text)
            elif isinstance(part, str):
                merged.append(part)
        return "".join(merged)
    return str(content)


class ChatCompletionClient:
    """
    Thin wrapper over the Together SDK chat completions endpoint.

    One attempt per call (SDK retries disabled). The raw text of the first
    choice is returned untouched; JSON handling belongs to the normalizer.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_CHAT_MODEL,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        sampling: Optional[Dict[str, Any]] = None,
    ):
        self._api_key = api_key
        self.model = model
        self.base_url = base_url
        self.timeout = timeout
        self.sampling = dict(DEFAULT_SAMPLING if sampling is None else sampling)
        self._client: Optional[Together] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatCompletionClient":
        return cls(
            model=settings.chat_model,
            base_url=settings.chat_base_url,
            timeout=settings.chat_timeout_seconds,
        )

    def _get_client(self) -> Together:
        """Create the Together client once and reuse it."""
        if self._client is None:
            api_key = self._api_key or load_chat_api_key()
            kwargs: Dict[str, Any] = {"api_key": api_key, "timeout": self.timeout, "max_retries": 0}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = Together(**kwargs)
            logger.info("Chat completion client initialized (model=%s)", self.model)
        return self._client

    def complete(self, messages: List[Dict[str, str]]) -> str:
        client = self._get_client()

        # ====== model call ======
        try:
            logger.info(
                "Chat completion call: model=%s, temperature=%s, messages=%d",
                self.model,
                self.sampling.get("temperature"),
                len(messages),
            )
            response = client.chat.completions.create(
                model=self.model,
                messages=messages,
                **self.sampling,
            )
        except Exception as e:
            # network, auth, non-2xx: all wrapped as TransportError
            raise TransportError(f"Chat completion call failed: {e}") from e

        # ====== response body ======
        try:
            choices = getattr(response, "choices", None)
            if not choices:
                raise ValueError("response has no choices")

            message = choices[0].message
            content = getattr(message, "content", None)
            if not content:
                raise ValueError("first choice has no content")

            result_text = _message_text(content).strip()
            if not result_text:
                raise ValueError("first choice content is blank")

            logger.debug("Raw model text: %s", result_text)
            return result_text

        except Exception as e:
            raise TransportError(f"Unusable chat completion response: {e}") from e
