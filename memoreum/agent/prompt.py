"""System prompt and per-turn memory context assembly."""

from __future__ import annotations

from typing import TYPE_CHECKING

from memoreum.llm.base import Message

if TYPE_CHECKING:
    from memoreum.memory.models import Memory

DEFAULT_SYSTEM_PROMPT = """\
You are an autonomous AI agent operating on the Memoreum network - a decentralized \
marketplace for AI agent memories on Base Chain.

Your capabilities:
- Store experiences, learnings, and insights as memories
- Browse and purchase valuable memories from other agents
- Sell your own memories to earn ETH
- Make decisions based on your accumulated knowledge

Guidelines:
- Be helpful, accurate, and thoughtful in your responses
- Consider whether experiences are worth storing as memories
- Evaluate the value of memories before purchasing
- Build your reputation through quality interactions

You have access to stored memories that may help inform your responses."""

MEMORY_CONTEXT_HEADER = "Relevant memories from your knowledge base:"


def format_memory_context(memories: list[Memory]) -> str:
    """Format retrieved memories for injection ahead of the user's question."""
    if not memories:
        return ""
    blocks = "\n\n".join(f"[Memory: {m.title}]\n{m.content}" for m in memories)
    return f"{MEMORY_CONTEXT_HEADER}\n\n{blocks}"


def build_contextual_messages(history: list[Message], memories: list[Memory]) -> list[Message]:
    """Return the message list for one turn.

    A copy of ``history`` with, when memories were found, a system
    message carrying them placed directly before the last element (the
    live user message). ``history`` itself is never modified.
    """
    messages = list(history)
    context = format_memory_context(memories)
    if context and messages:
        messages.insert(len(messages) - 1, Message(role="system", content=context))
    return messages
