from __future__ import annotations

from typing import Any

from retrieval.service import format_history_for_llm
from retrieval.visibility import VisibilityContext
from tools.registry import ToolRegistry, ToolSpec


SEARCH_HISTORY_PARAMETERS = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "What to look for in earlier conversation.",
        },
        "days": {
            "type": "integer",
            "description": "Only search the last N days. Omit to search everything.",
        },
        "limit": {
            "type": "integer",
            "description": "Maximum number of messages to return.",
        },
    },
    "required": ["query"],
}


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def register_history_tools(
    registry: ToolRegistry,
    *,
    history,
    context: VisibilityContext,
) -> None:
    """Bind search_history to one requester. The model never chooses whose history it sees."""
    settings = history.settings

    async def _search_history(arguments: dict[str, Any]) -> str:
        query = str(arguments.get("query") or "").strip()
        if not query:
            return "Error: query is required."

        days = _optional_int(arguments.get("days"))
        if days is not None and days < 1:
            days = None
        limit = _optional_int(arguments.get("limit")) or settings.default_limit
        limit = max(1, min(limit, settings.max_limit))

        results = await history.search(
            query,
            context=context,
            guild_id=context.guild_id,
            days=days,
            limit=limit,
        )
        return format_history_for_llm(results)

    registry.register(
        ToolSpec(
            name="search_history",
            description=(
                "Search earlier chat messages related to a topic. "
                "Use it when the user refers to something said before."
            ),
            parameters=SEARCH_HISTORY_PARAMETERS,
            handler=_search_history,
        )
    )
