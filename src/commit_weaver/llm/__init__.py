"""
Classifier service integration for commit_weaver.

This package contains the :class:`ClaudeClient` for the Anthropic
Messages API, the :class:`RetryingClient` backoff wrapper and the
commit message generators built on top of them.
"""

from .claude_client import ClaudeClient, LLMError, LLMHTTPError, strip_thinking_tags  # noqa: F401
from .commit_message_generator import CommitMessageGenerator, OfflineMessageGenerator  # noqa: F401
from .response_parsing import extract_json  # noqa: F401
from .retry import RetryCancelled, RetryingClient, RetryPolicy  # noqa: F401
