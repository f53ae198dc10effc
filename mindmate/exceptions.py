# mindmate/exceptions.py
"""
Exceptions shared across the whole project.

- ConfigError             : settings / environment problems (.env, key file, URLs)
- LLMError                : chat-completion call and response handling failures
  - TransportError        : network / HTTP / SDK failure, missing choices or content
  - MalformedResponse     : no balanced JSON object, or it does not parse
  - InvalidReply          : the object parses but has no usable "reply"
- PersistenceError        : any read/write failure against the storage backend
- AuthError               : sign-in / sign-up / token lookup failures
- ChatInputError          : message input validation failure
- ExchangeInProgressError : a second send while one exchange is still running
"""


class ConfigError(RuntimeError):
    """Settings problem (.env, key file, backend URL...)."""
    pass


class LLMError(RuntimeError):
    """Failure while calling the chat model or reading its answer."""
    pass


class TransportError(LLMError):
    """The model call itself failed (network, non-2xx, no choices)."""
    pass


class MalformedResponse(LLMError):
    """Model text holds no parseable JSON object."""
    pass


class InvalidReply(LLMError):
    """Model JSON parsed but the reply field is missing or too short."""
    pass


class PersistenceError(RuntimeError):
    """Storage backend read/write failure."""
    pass


class AuthError(RuntimeError):
    """Auth collaborator failure."""
    pass


class ChatInputError(ValueError):
    """User message validation failure."""
    pass


class ExchangeInProgressError(RuntimeError):
    """Only one exchange may run per chat session at a time."""
    pass
