import os
import asyncio
import discord
from discord.ext import commands
from openai import OpenAI
from config.defaults import DEFAULT_ALLOWED_CHANNEL_IDS
from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_OPENAI_MODEL
from config.defaults import DEFAULT_SYSTEM_PROMPT
from config.defaults import DISCORD_MAX_MESSAGE_LEN
from controller.context import load_system_prompt
from controller.context import parse_id_set
from controller.context import resolve_allowed_channel_ids
from db.connection import init_db
from db.connection import missing_schema_columns_sync
from db.migrate import list_schema_migrations_sync
from embeddings.provider import build_embedding_provider
from history.service import HistoryService
from history.settings import load_history_settings
from jobs.service import activity_loop as activity_loop_service
from misc.runtime_wiring import wire_bot_runtime

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")
if not OPENAI_API_KEY:
    raise RuntimeError("Missing OPENAI_API_KEY env var")

OPENAI_MODEL = os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL)
OPENAI_ENDPOINT = (os.getenv("OPENAI_ENDPOINT") or "").strip() or None

DB_PATH = os.getenv("CHATTER_DB_PATH", DEFAULT_DB_PATH)

_REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
SETTINGS_PATH = os.getenv("CHATTER_SETTINGS_PATH", os.path.join(_REPO_ROOT, "config", "history.yml"))
HISTORY_SETTINGS, HISTORY_SETTINGS_WARNING = load_history_settings(SETTINGS_PATH)
if HISTORY_SETTINGS_WARNING:
    print(f"[CFG] {HISTORY_SETTINGS_WARNING}")
print(f"[CFG] history {HISTORY_SETTINGS.summary()}")

SYSTEM_PROMPT, SYSTEM_PROMPT_SOURCE = load_system_prompt(
    os.getenv("CHATTER_SYSTEM_PROMPT_PATH"),
    DEFAULT_SYSTEM_PROMPT,
)

# =========================
# EMBEDDINGS
# =========================
EMBEDDING_PROVIDER = (os.getenv("EMBEDDING_PROVIDER") or "").strip().lower()
EMBEDDING_MODEL_ID = (os.getenv("EMBEDDING_MODEL_ID") or "").strip()
EMBEDDING_API_KEY = os.getenv("EMBEDDING_API_KEY") or (OPENAI_API_KEY if EMBEDDING_PROVIDER == "openai" else None)
EMBEDDING_ENDPOINT = (os.getenv("EMBEDDING_ENDPOINT") or "").strip()

embedding_provider = build_embedding_provider(
    EMBEDDING_PROVIDER,
    model=EMBEDDING_MODEL_ID,
    api_key=EMBEDDING_API_KEY,
    endpoint=EMBEDDING_ENDPOINT,
    timeout_seconds=HISTORY_SETTINGS.embed_timeout_seconds,
)
print(
    f"[CFG] model={OPENAI_MODEL} endpoint={OPENAI_ENDPOINT or 'default'} "
    f"embedding={embedding_provider.name + '/' + embedding_provider.model if embedding_provider else 'off (text search)'} "
    f"prompt={SYSTEM_PROMPT_SOURCE}"
)

client = OpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_ENDPOINT)

# =========================
# ALLOWED CHANNELS + OWNERS
# =========================
ALLOWED_CHANNEL_IDS = resolve_allowed_channel_ids(DEFAULT_ALLOWED_CHANNEL_IDS)
OWNER_USER_IDS = parse_id_set(os.getenv("CHATTER_OWNER_USER_IDS"))
print(
    f"[CFG] db={DB_PATH} allowed_channels={len(ALLOWED_CHANNEL_IDS) or 'all'} "
    f"owner_ids={len(OWNER_USER_IDS)}"
)

# =========================
# DB
# =========================
db_conn = init_db(DB_PATH)
db_lock = asyncio.Lock()

history = HistoryService(
    db_lock=db_lock,
    db_conn=db_conn,
    embedding_provider=embedding_provider,
    settings=HISTORY_SETTINGS,
)


def chunk_text(text: str, limit: int = DISCORD_MAX_MESSAGE_LEN) -> list[str]:
    text = text or ""
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text

    while len(remaining) > limit:
        # Prefer splitting on paragraph, then newline, then space
        split_at = remaining.rfind("\n\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind("\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at == -1:
            split_at = limit

        chunk = remaining[:split_at].strip()
        if chunk:
            chunks.append(chunk)

        remaining = remaining[split_at:].strip()

    if remaining:
        chunks.append(remaining)

    return chunks


async def send_chunked(channel: discord.abc.Messageable, text: str) -> None:
    for part in chunk_text(text, DISCORD_MAX_MESSAGE_LEN):
        await channel.send(part)


def user_is_owner(user: discord.abc.User) -> bool:
    uid = int(getattr(user, "id", 0) or 0)
    return bool(uid and uid in OWNER_USER_IDS)


intents = discord.Intents.default()
intents.message_content = True
intents.members = True

bot = commands.Bot(command_prefix="!", intents=intents)


async def activity_loop():
    await activity_loop_service(
        bot=bot,
        history=history,
        interval_seconds=HISTORY_SETTINGS.activity_interval_seconds,
        inactive_days=HISTORY_SETTINGS.activity_inactive_days,
    )


wire_bot_runtime(
    bot,
    allowed_channel_ids=ALLOWED_CHANNEL_IDS,
    user_is_owner=user_is_owner,
    list_schema_migrations_sync=list_schema_migrations_sync,
    missing_schema_columns_sync=missing_schema_columns_sync,
    db_lock=db_lock,
    db_conn=db_conn,
    history=history,
    send_chunked=send_chunked,
    client=client,
    openai_model=OPENAI_MODEL,
    system_prompt=SYSTEM_PROMPT,
    embedding_provider_name=embedding_provider.name if embedding_provider else "none",
    embedding_model=embedding_provider.model if embedding_provider else "",
    activity_loop_func=activity_loop,
)


bot.run(DISCORD_TOKEN)
