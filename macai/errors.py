from typing import Optional


class MacAIError(Exception):
    """Base class for errors raised by the chat relay."""


class ClientInputError(MacAIError):
    pass


class ConfigurationError(MacAIError):
    pass


class ProviderError(MacAIError):
    """Non-success response from the completion provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ToolExecutionError(MacAIError):
    pass


class StreamParseError(MacAIError):
    def __init__(self, payload: str, reason: str):
        super().__init__(f"unparseable stream payload ({reason}): {payload[:200]}")
        self.payload = payload
        self.reason = reason
