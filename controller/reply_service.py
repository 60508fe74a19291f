from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

from ingestion.service import describe_channel
from retrieval.visibility import visibility_context_for_channel
from tools.history_tools import register_history_tools
from tools.registry import ToolRegistry


REPLY_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "reply",
            "description": "Send a message to the channel.",
            "parameters": {
                "type": "object",
                "properties": {
                    "content": {"type": "string", "description": "The message to send."},
                },
                "required": ["content"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "do_not_reply",
            "description": "Stay quiet this time.",
            "parameters": {"type": "object", "properties": {}},
        },
    },
]


@dataclass(slots=True)
class ReplyDecision:
    should_reply: bool
    content: str | None = None
    reason: str = ""


def no_reply(reason: str) -> ReplyDecision:
    return ReplyDecision(should_reply=False, content=None, reason=reason)


def build_reply_messages(
    *,
    system_prompt: str,
    recent_messages: list[dict[str, Any]],
    max_chars_per_message: int = 1500,
) -> list[dict[str, Any]]:
    """System prompt followed by the channel's recent messages, oldest first."""
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for m in recent_messages:
        content = (m.get("content") or "").strip()
        if not content:
            continue
        role = "assistant" if m.get("role") == "assistant" else "user"
        if role == "user":
            content = f"{m.get('author_name') or 'someone'}: {content}"
        messages.append({"role": role, "content": content[:max_chars_per_message]})
    return messages


def _assistant_turn(msg) -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": msg.content,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.function.name, "arguments": call.function.arguments},
            }
            for call in msg.tool_calls
        ],
    }


def _reply_content(arguments_json: str | None) -> str:
    try:
        args = json.loads(arguments_json or "{}")
    except json.JSONDecodeError:
        return ""
    if not isinstance(args, dict):
        return ""
    return str(args.get("content") or "").strip()


async def _run_tool_loop(
    *,
    client,
    model: str,
    messages: list[dict[str, Any]],
    registry: ToolRegistry,
    max_tool_rounds: int,
    decision: asyncio.Future,
) -> None:
    tools = REPLY_TOOLS + registry.openai_tools()

    def _resolve(value: ReplyDecision) -> None:
        if not decision.done():
            decision.set_result(value)

    try:
        for _ in range(max(1, int(max_tool_rounds))):
            resp = await asyncio.to_thread(
                client.chat.completions.create,
                model=model,
                messages=messages,
                tools=tools,
            )
            msg = resp.choices[0].message
            tool_calls = list(getattr(msg, "tool_calls", None) or [])

            if not tool_calls:
                text = (msg.content or "").strip()
                _resolve(ReplyDecision(should_reply=True, content=text, reason="text") if text else no_reply("empty"))
                return

            messages.append(_assistant_turn(msg))
            for call in tool_calls:
                name = call.function.name
                if name == "reply":
                    content = _reply_content(call.function.arguments)
                    _resolve(ReplyDecision(should_reply=True, content=content, reason="reply") if content else no_reply("empty"))
                    return
                if name == "do_not_reply":
                    _resolve(no_reply("do_not_reply"))
                    return

                print(f"[Reply] tool call {name}")
                output = await registry.call(name, call.function.arguments)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": output})

        _resolve(no_reply("max_tool_rounds"))
    except Exception as e:
        print(f"[Reply] decision error: {e}")
        _resolve(no_reply("error"))


async def decide_reply(
    *,
    client,
    model: str,
    system_prompt: str,
    recent_messages: list[dict[str, Any]],
    registry: ToolRegistry,
    timeout_seconds: float = 30.0,
    max_tool_rounds: int = 4,
) -> ReplyDecision:
    """
    Ask the model whether and what to reply. The model answers through reply/do_not_reply
    and may call registered tools in between. Waiting is bounded; a timeout means no reply.
    """
    loop = asyncio.get_running_loop()
    decision: asyncio.Future = loop.create_future()
    messages = build_reply_messages(system_prompt=system_prompt, recent_messages=recent_messages)

    runner = asyncio.create_task(
        _run_tool_loop(
            client=client,
            model=model,
            messages=messages,
            registry=registry,
            max_tool_rounds=max_tool_rounds,
            decision=decision,
        )
    )
    try:
        return await asyncio.wait_for(decision, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        print(f"[Reply] no decision within {timeout_seconds:g}s; staying quiet")
        return no_reply("timeout")
    finally:
        runner.cancel()


async def reply_to_message(
    message: Any,
    *,
    history,
    client,
    model: str,
    system_prompt: str,
    bot_user_id: int | None,
) -> ReplyDecision:
    """Decide a reply for one incoming message using the channel's recent history and search tools."""
    settings = history.settings
    channel = message.channel
    guild = getattr(message, "guild", None)
    guild_id = int(guild.id) if guild else None

    recent = await history.recent_messages(
        guild_id,
        int(channel.id),
        settings.context_load_days,
        settings.context_max_messages,
    )

    members = await history.members_of(int(channel.id))
    if not members:
        _, _, members = describe_channel(channel, bot_user_id)
    context = visibility_context_for_channel(channel.id, guild_id, members)

    registry = ToolRegistry()
    register_history_tools(registry, history=history, context=context)

    return await decide_reply(
        client=client,
        model=model,
        system_prompt=system_prompt,
        recent_messages=recent,
        registry=registry,
        timeout_seconds=settings.reply_timeout_seconds,
        max_tool_rounds=settings.max_tool_rounds,
    )
