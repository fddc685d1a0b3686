"""Conversation State — append-only, role-tagged dialogue in Anthropic Messages API shape.

Invariants:
    - Roles are "user" or "assistant"; the system prompt is held separately
    - Tool results travel as tool_result blocks inside user turns
    - Messages are only appended; the single in-place edit is attaching a synthetic
      tool_use block to the trailing assistant turn (forced convergence)
    - Every tool_use block in history is answered by a tool_result in the next user turn
"""

from dataclasses import dataclass, field
from typing import Any

USER = "user"
ASSISTANT = "assistant"


@dataclass
class ConversationState:
    system: str
    messages: list[dict[str, Any]] = field(default_factory=list)

    def add_user(self, content: str | list[dict]) -> None:
        self.messages.append({"role": USER, "content": content})

    def add_assistant(self, content: list[dict]) -> None:
        self.messages.append({"role": ASSISTANT, "content": content})

    @property
    def last_role(self) -> str | None:
        return self.messages[-1]["role"] if self.messages else None

    def attach_to_assistant(self, block: dict) -> None:
        """Add a block to the trailing assistant turn, opening one if needed."""
        if self.last_role == ASSISTANT:
            content = self.messages[-1]["content"]
            if isinstance(content, str):
                content = [{"type": "text", "text": content}] if content else []
            self.messages[-1]["content"] = [*content, block]
        else:
            self.add_assistant([block])

    def as_api_messages(self) -> list[dict[str, Any]]:
        return list(self.messages)

    def __len__(self) -> int:
        return len(self.messages)
