from __future__ import annotations

import pytest

from poller.app.ports.message_source import MessageSourceError
from tests.fakes import RecordingToken


@pytest.fixture()
def token() -> RecordingToken:
    return RecordingToken()


@pytest.fixture()
def hard_error() -> MessageSourceError:
    return MessageSourceError("unauthorized")
