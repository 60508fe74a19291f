from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    history: Any
    send_chunked: Callable

    # llm
    client: Any
    openai_model: str
    system_prompt: str


@dataclass(frozen=True)
class RuntimeBootDeps:
    allowed_channel_ids: set[int]
    activity_loop_func: Callable
