"""
Shared services for the voice emergency pipeline.

Constants, the error taxonomy, resilience helpers and the interfaces of
external collaborators.
"""

from .constants import DEFAULTS
from .constants import ERROR_CODES
from .constants import SUPPORTED_LANGUAGES
from .constants import get_limit
from .constants import get_timeout
from .errors import ErrorHandler
from .errors import InputError
from .errors import InvalidSessionState
from .errors import ProviderTimeout
from .errors import RetentionViolation
from .errors import SessionNotFound
from .errors import SessionPersistenceError
from .errors import VoicePipelineError

__all__ = [
    "DEFAULTS",
    "ERROR_CODES",
    "SUPPORTED_LANGUAGES",
    "get_timeout",
    "get_limit",
    "ErrorHandler",
    "VoicePipelineError",
    "InputError",
    "ProviderTimeout",
    "SessionNotFound",
    "RetentionViolation",
    "InvalidSessionState",
    "SessionPersistenceError",
]
