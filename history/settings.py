from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


@dataclass(slots=True)
class HistorySettings:
    candidate_window: int = 200
    default_limit: int = 5
    max_limit: int = 20
    embed_timeout_seconds: float = 10.0
    context_load_days: int = 7
    context_max_messages: int = 30
    reply_timeout_seconds: float = 30.0
    max_tool_rounds: int = 4
    activity_interval_seconds: int = 3600
    activity_inactive_days: int = 14

    def summary(self) -> str:
        return (
            f"window={self.candidate_window} limit={self.default_limit}/{self.max_limit} "
            f"embed_timeout={self.embed_timeout_seconds:g}s "
            f"context={self.context_max_messages}msgs/{self.context_load_days}d "
            f"reply_timeout={self.reply_timeout_seconds:g}s rounds={self.max_tool_rounds} "
            f"activity={self.activity_interval_seconds}s/{self.activity_inactive_days}d"
        )


def _section(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, default: int, *, lo: int, hi: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        out = int(value)
    except (TypeError, ValueError):
        return default
    return max(lo, min(hi, out))


def _as_float(value: Any, default: float, *, lo: float, hi: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    if out != out:
        return default
    return max(lo, min(hi, out))


def load_history_settings(path: str | Path | None) -> tuple[HistorySettings, str | None]:
    """
    Returns (settings, warning_message). warning_message is None on clean load.
    """
    defaults = HistorySettings()
    if not path:
        return (defaults, "History settings path missing; using built-in defaults.")

    p = Path(path)
    if not p.exists():
        return (defaults, f"History settings file not found at {p}; using built-in defaults.")

    try:
        payload = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        return (defaults, f"Failed to read history settings from {p}: {exc}; using built-in defaults.")

    if not isinstance(payload, dict):
        return (defaults, f"Invalid history settings format in {p}; using built-in defaults.")

    search = _section(payload, "search")
    embedding = _section(payload, "embedding")
    context = _section(payload, "context")
    reply = _section(payload, "reply")
    activity = _section(payload, "activity")

    max_limit = _as_int(search.get("max_limit"), defaults.max_limit, lo=1, hi=100)
    settings = HistorySettings(
        candidate_window=_as_int(search.get("candidate_window"), defaults.candidate_window, lo=10, hi=5000),
        default_limit=_as_int(search.get("default_limit"), defaults.default_limit, lo=1, hi=max_limit),
        max_limit=max_limit,
        embed_timeout_seconds=_as_float(embedding.get("timeout_seconds"), defaults.embed_timeout_seconds, lo=0.5, hi=120.0),
        context_load_days=_as_int(context.get("load_days"), defaults.context_load_days, lo=1, hi=365),
        context_max_messages=_as_int(context.get("max_messages"), defaults.context_max_messages, lo=1, hi=200),
        reply_timeout_seconds=_as_float(reply.get("decision_timeout_seconds"), defaults.reply_timeout_seconds, lo=1.0, hi=300.0),
        max_tool_rounds=_as_int(reply.get("max_tool_rounds"), defaults.max_tool_rounds, lo=1, hi=10),
        activity_interval_seconds=_as_int(activity.get("interval_seconds"), defaults.activity_interval_seconds, lo=60, hi=7 * 86400),
        activity_inactive_days=_as_int(activity.get("inactive_days"), defaults.activity_inactive_days, lo=1, hi=365),
    )
    return (settings, None)
