from __future__ import annotations

from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_history import register as register_history
from misc.commands.commands_owner import register as register_owner
from misc.discord_gates import channel_is_allowed
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps
from misc.events_runtime import register_runtime_events


def wire_bot_runtime(
    bot,
    *,
    allowed_channel_ids: set[int],
    user_is_owner,
    list_schema_migrations_sync,
    missing_schema_columns_sync,
    db_lock,
    db_conn,
    history,
    send_chunked,
    client,
    openai_model: str,
    system_prompt: str,
    embedding_provider_name: str,
    embedding_model: str,
    activity_loop_func,
) -> None:
    def in_allowed_channel(ctx) -> bool:
        return channel_is_allowed(ctx.channel, allowed_channel_ids)

    command_deps = CommandDeps(
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=send_chunked,
        history=history,
        list_schema_migrations_sync=list_schema_migrations_sync,
        missing_schema_columns_sync=missing_schema_columns_sync,
        embedding_provider_name=embedding_provider_name,
        embedding_model=embedding_model,
    )
    command_gates = CommandGates(
        in_allowed_channel=in_allowed_channel,
        allowed_channel_ids=allowed_channel_ids,
        user_is_owner=user_is_owner,
    )

    register_owner(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    register_history(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            history=history,
            send_chunked=send_chunked,
            client=client,
            openai_model=openai_model,
            system_prompt=system_prompt,
        ),
        boot=RuntimeBootDeps(
            allowed_channel_ids=allowed_channel_ids,
            activity_loop_func=activity_loop_func,
        ),
    )
