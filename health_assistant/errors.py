"""
Error kinds raised by the relay layers.

Prompt building, the Gemini gateway and the normalizer raise these; the HTTP
layer maps them to status codes in one place per endpoint.
"""


class AssistantError(Exception):
    """Base class for all relay errors."""


class ValidationError(AssistantError):
    """A required request field is missing or malformed."""


class UpstreamError(AssistantError):
    """The Gemini call failed or returned unusable data."""


class ParseError(UpstreamError):
    """Extracted model text is not valid JSON."""


class ConfigError(UpstreamError):
    """The service is missing configuration needed to call Gemini."""


class MissingAudioError(UpstreamError):
    """A speech reply carried no inline audio payload."""


class PayloadTooLargeError(AssistantError):
    """The request body exceeds the configured ceiling."""
