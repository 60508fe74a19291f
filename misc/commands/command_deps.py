from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Callable


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    db_lock: Any = None
    db_conn: Any = None
    send_chunked: Callable | None = None
    history: Any = None
    max_line_chars: int = 300

    # Schema introspection for !migrations
    list_schema_migrations_sync: Callable | None = None
    missing_schema_columns_sync: Callable | None = None

    # Reported by !historystatus
    embedding_provider_name: str = "none"
    embedding_model: str = ""


@dataclass(frozen=True)
class CommandGates:
    in_allowed_channel: Callable[[Any], bool] = _default_false
    allowed_channel_ids: set[int] = field(default_factory=set)
    user_is_owner: Callable[[Any], bool] = _default_false
