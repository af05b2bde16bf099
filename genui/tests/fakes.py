"""
fakes.py — canned model payloads and a mock Mistral client shared by the tests.
"""
import json
from unittest.mock import AsyncMock, MagicMock

OWNER = "user-1"
OTHER_OWNER = "user-2"


def payload(jsx, css="") -> str:
    """JSON payload as the model would return it."""
    return json.dumps({"jsxCode": jsx, "cssCode": css})


def make_mistral_response(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


def make_mock_mistral(*outcomes) -> MagicMock:
    """
    Mock Mistral client. Each outcome is either a payload string (returned as
    message content) or an exception instance (raised by that call).
    """
    mock = MagicMock()
    side_effect = [
        o if isinstance(o, BaseException) else make_mistral_response(o)
        for o in outcomes
    ]
    mock.chat.complete_async = AsyncMock(side_effect=side_effect)
    return mock
