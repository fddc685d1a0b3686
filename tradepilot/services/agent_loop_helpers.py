"""Agent Loop Helpers — pure response introspection and message block builders.

Invariants:
    - All functions are pure (stateless, deterministic)
    - tool_result content is JSON text; non-JSON values are stringified, never dropped
    - An assistant turn is never stored empty (the Messages API rejects it)

Design Decisions:
    - Extracted from agent_loop.py so the loop reads as control flow only
"""

import json
from typing import Any

from tradepilot.core.tool_descriptor import to_api_name

EMPTY_TURN_TEXT = "(no response)"


# -- Response introspection ----------------------------------------------------

def tool_use_blocks(response: Any) -> list[Any]:
    return [
        b for b in response.content
        if getattr(b, "type", None) == "tool_use"
    ]


def response_text(response: Any) -> str:
    return "".join(
        b.text for b in response.content
        if getattr(b, "type", None) == "text"
    )


def serialize_content(response: Any, keep_tool_id: str | None = None) -> list[dict]:
    """Serialize blocks; tool_use blocks other than keep_tool_id are dropped."""
    blocks = []
    for b in response.content:
        data = b.model_dump(exclude_none=True)
        if data.get("type") == "tool_use" and data.get("id") != keep_tool_id:
            continue
        if data.get("type") == "text" and not data.get("text", "").strip():
            continue
        blocks.append(data)
    return blocks or [text_block(EMPTY_TURN_TEXT)]


# -- Block builders ------------------------------------------------------------

def text_block(text: str) -> dict:
    return {"type": "text", "text": text}


def tool_result_block(tool_use_id: str, outcome: dict) -> dict:
    block = {
        "type": "tool_result",
        "tool_use_id": tool_use_id,
        "content": json.dumps(outcome, ensure_ascii=False, default=str),
    }
    if outcome.get("status") == "error":
        block["is_error"] = True
    return block


def synthetic_tool_use(tool_name: str, args: dict, sequence: int) -> dict:
    """tool_use block for a host-initiated (auto-invoked) call."""
    return {
        "type": "tool_use",
        "id": f"toolu_auto_{sequence:03d}",
        "name": to_api_name(tool_name),
        "input": dict(args),
    }


def refused_outcome(tool_name: str, code: str, message: str) -> dict:
    """Error outcome for a call the loop refuses without reaching the registry."""
    return {
        "status": "error",
        "tool": tool_name,
        "error_code": code,
        "message": f"ERROR: {message}",
    }


# -- Usage accounting ----------------------------------------------------------

def usage_tokens(response: Any) -> tuple[int, int]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return 0, 0
    return (
        getattr(usage, "input_tokens", 0) or 0,
        getattr(usage, "output_tokens", 0) or 0,
    )
