"""
Pytest configuration and fixtures for Streamcrew tests.
"""

import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from streamcrew.datatypes.chat_datatypes import ChatMessage, ChatRole  # noqa: E402
from streamcrew.datatypes.persona_datatypes import PersonaConfig, PersonaRoster  # noqa: E402


def make_message(username: str, text: str, role: ChatRole = ChatRole.USER, channel: str = "testchannel") -> ChatMessage:
    return ChatMessage(channel=channel, username=username, text=text, role=role)


@pytest.fixture()
def roster() -> PersonaRoster:
    return PersonaRoster([
        PersonaConfig(name="Nova", model="test/nova", system_prompt="You are Nova.", intro_message="hi chat"),
        PersonaConfig(name="Byte", model="test/byte", system_prompt="You are Byte."),
        PersonaConfig(name="Warden", model="test/warden", system_prompt="You are Warden.", is_moderator=True),
    ])
