from typing import Dict, Any
import logging

from datamind.services.snowflake_service import ConnectionConfig
from datamind.tools.base import FunctionTool, params_schema, string_param

logger = logging.getLogger(__name__)

async def connect_to_snowflake(env, context, params: Dict[str, Any]) -> str:
    connection_id = params.get("connection_id")
    if connection_id:
        record = await env.storage.get_snowflake_connection(connection_id)
        if record is not None and record.user_id != context.user_id:
            record = None
    else:
        record = await env.storage.get_default_snowflake_connection(context.user_id)

    if record is None:
        return (
            "No Snowflake connection is configured. Add one under Settings and "
            "mark it as the default, then ask me to connect again."
        )
    if not record.is_active:
        return f"Connection **{record.name}** is inactive. Activate it in Settings first."

    await env.snowflake.create_connection(record.id, ConnectionConfig.from_record(record))
    await env.storage.mark_snowflake_connected(record.id)
    await env.contexts.update_context(
        context,
        connection_id=record.id,
        current_database=record.database,
        current_schema=record.schema,
        tables=[],
        stages=[],
    )
    logger.info(f"Session {context.session_id} connected with {record.id}")

    lines = [f"Connected to Snowflake account **{record.account}** using **{record.name}**."]
    if record.database:
        lines.append(f"- Database: {record.database}")
    if record.schema:
        lines.append(f"- Schema: {record.schema}")
    if record.warehouse:
        lines.append(f"- Warehouse: {record.warehouse}")
    return "\n".join(lines)

async def get_current_context(env, context, params: Dict[str, Any]) -> str:
    lines = ["**Current context**", "", env.contexts.get_context_summary(context)]
    if context.tables:
        preview = ", ".join(context.tables[:10])
        more = f" (+{len(context.tables) - 10} more)" if len(context.tables) > 10 else ""
        lines.append(f"\nTables: {preview}{more}")
    if context.yaml_filename:
        lines.append(f"\nYAML file: {context.yaml_filename}")
    if context.last_query_sql:
        lines.append(f"\nLast query:\n```sql\n{context.last_query_sql}\n```")
    return "\n".join(lines)

TOOLS = [
    FunctionTool(
        name="connect_to_snowflake",
        description="Connect to Snowflake with a stored connection (the user's default if none is given)",
        category="connection",
        handler=connect_to_snowflake,
        parameters=params_schema(connection_id=string_param("Stored connection id; optional")),
    ),
    FunctionTool(
        name="get_current_context",
        description="Describe the current connection, selected database/schema/stage and loaded data",
        category="connection",
        handler=get_current_context,
    ),
]
