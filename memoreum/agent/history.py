"""In-memory conversation history anchored by a system prompt."""

import logging
from dataclasses import dataclass, field

from memoreum.llm.base import Message, Role

logger = logging.getLogger(__name__)


@dataclass
class ConversationHistory:
    """Conversation turns for a single agent.

    Index 0 always holds the active system prompt; nothing here can
    remove it.
    """

    system_prompt: str
    messages: list[Message] = field(init=False)

    def __post_init__(self) -> None:
        self.messages = [Message(role="system", content=self.system_prompt)]

    def __len__(self) -> int:
        return len(self.messages)

    def add(self, role: Role, content: str) -> None:
        """Append a user or assistant turn."""
        if role == "system":
            msg = "System messages cannot be appended to history"
            raise ValueError(msg)
        self.messages.append(Message(role=role, content=content))

    def clear(self) -> int:
        """Drop every turn after the system prompt. Returns the count dropped."""
        count = len(self.messages) - 1
        del self.messages[1:]
        return count

    def set_system_prompt(self, prompt: str) -> None:
        """Replace the system prompt in place."""
        self.system_prompt = prompt
        self.messages[0] = Message(role="system", content=prompt)

    def snapshot(self) -> list[Message]:
        """A shallow copy safe for callers to mutate."""
        return list(self.messages)

    def to_api_messages(self) -> list[dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in self.messages]
