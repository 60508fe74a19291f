from __future__ import annotations

import os
import re
from pathlib import Path


def parse_id_set(raw: str | None) -> set[int]:
    if not raw:
        return set()
    out: set[int] = set()
    for tok in re.split(r"[\s,;]+", raw.strip()):
        if not tok:
            continue
        if re.fullmatch(r"\d{8,22}", tok):
            out.add(int(tok))
    return out


def resolve_allowed_channel_ids(default_ids: set[int]) -> set[int]:
    env_ids = parse_id_set(os.getenv("CHATTER_ALLOWED_CHANNEL_IDS"))
    return env_ids if env_ids else set(default_ids)


def load_system_prompt(path: str | Path | None, default: str) -> tuple[str, str]:
    """Returns (prompt, source). Falls back to the built-in prompt when the file is missing or empty."""
    if not path:
        return (default, "builtin")
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8").strip()
    except OSError as e:
        print(f"[CFG] system prompt unreadable at {p}: {e}; using built-in prompt")
        return (default, "builtin")
    if not text:
        return (default, "builtin")
    return (text, str(p))
