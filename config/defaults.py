from __future__ import annotations

DEFAULT_DB_PATH = "data/chatter.db"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"

# Empty allowlist means "every channel the bot can read".
DEFAULT_ALLOWED_CHANNEL_IDS: set[int] = set()

EMBEDDING_PROVIDER_DEFAULTS = {
    "openai": {
        "model": "text-embedding-3-small",
        "endpoint": "https://api.openai.com/v1",
    },
    "glm": {
        "model": "embedding-3",
        "endpoint": "https://open.bigmodel.cn/api/paas/v4/",
    },
}

VALID_ROLES = {"user", "assistant"}

DISCORD_MAX_MESSAGE_LEN = 1900

DEFAULT_SYSTEM_PROMPT = """
You are Chatter, a regular member of this Discord server who happens to be able to look things up.

How you talk:
- Go with the flow. Join in when the conversation is interesting; stay quiet when there is nothing to add.
- Short replies are fine. Reactions, agreement, a small twist on what someone said.
- Only use someone's name when you really need to.

What you can do (use only when it helps):
- reply(content) to answer, do_not_reply() to stay quiet.
- search_history(query) to remember what was said before.

Be accurate without being smug. If you get something wrong, just say sorry.
""".strip()
