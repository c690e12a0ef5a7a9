from typing import Dict, Any

from datamind.services.snowflake_service import row_value
from datamind.tools.base import FunctionTool, params_schema, string_param
from datamind.utils.formatting import markdown_table, numbered_list
from datamind.utils.validators import safe_identifier, qualified_name

def _names(result) -> list:
    return [row_value(r, "name") for r in result.rows]

async def get_databases(env, context, params: Dict[str, Any]) -> str:
    connection_id = env.require_connection(context)
    result = await env.snowflake.execute_query(connection_id, "SHOW DATABASES")
    names = _names(result)
    if not names:
        return "No databases are visible to this connection."
    return (
        f"Available databases:\n\n{numbered_list(names)}\n\n"
        "Say `use database <name>` to select one."
    )

async def select_database(env, context, params: Dict[str, Any]) -> str:
    connection_id = env.require_connection(context)
    database = safe_identifier(params.get("database_name", ""), "database")
    await env.snowflake.execute_query(connection_id, f"USE DATABASE {database}")
    await env.contexts.update_context(
        context, current_database=database, current_schema=None, tables=[], stages=[], current_stage=None
    )
    return f"Now using database **{database}**. Say `show schemas` to list its schemas."

async def get_schemas(env, context, params: Dict[str, Any]) -> str:
    connection_id = env.require_connection(context)
    if not context.current_database:
        return "No database selected. Please select a database first."
    result = await env.snowflake.execute_query(
        connection_id, f"SHOW SCHEMAS IN DATABASE {safe_identifier(context.current_database)}"
    )
    names = _names(result)
    if not names:
        return f"No schemas found in {context.current_database}."
    return (
        f"Schemas in {context.current_database}:\n\n{numbered_list(names)}\n\n"
        "Say `use schema <name>` to select one."
    )

async def select_schema(env, context, params: Dict[str, Any]) -> str:
    connection_id = env.require_connection(context)
    if not context.current_database:
        return "No database selected. Please select a database first."
    schema = safe_identifier(params.get("schema_name", ""), "schema")
    await env.snowflake.execute_query(
        connection_id, f"USE SCHEMA {qualified_name(context.current_database, schema)}"
    )
    await env.contexts.update_context(
        context, current_schema=schema, tables=[], stages=[], current_stage=None
    )
    return f"Now using schema **{context.current_database}.{schema}**. Say `show tables` to list its tables."

async def get_tables(env, context, params: Dict[str, Any]) -> str:
    env.require_selection(context)
    location = qualified_name(context.current_database, context.current_schema)
    result = await env.snowflake.execute_query(context.connection_id, f"SHOW TABLES IN SCHEMA {location}")
    names = _names(result)
    await env.contexts.update_context(context, tables=names)
    if not names:
        return f"No tables found in {location}."
    return (
        f"Found {len(names)} tables in {location}:\n\n{numbered_list(names)}\n\n"
        "Ask a question about the data or say `describe table <name>`."
    )

async def describe_table(env, context, params: Dict[str, Any]) -> str:
    env.require_selection(context)
    table = params.get("table_name", "").split(".")[-1]
    table = safe_identifier(table, "table")
    columns = await env.snowflake.get_table_structure(
        context.connection_id, table, context.current_database, context.current_schema
    )
    if not columns:
        return f"Table {table} has no columns or does not exist."
    rows = [
        {"Column": c["name"], "Type": c["type"], "Nullable": "yes" if c["nullable"] else "no"}
        for c in columns
    ]
    return f"Structure of **{table}**:\n\n" + markdown_table(["Column", "Type", "Nullable"], rows, len(rows))

TOOLS = [
    FunctionTool(
        name="get_databases",
        description="List the databases available on the Snowflake connection",
        category="database",
        handler=get_databases,
    ),
    FunctionTool(
        name="select_database",
        description="Select the database to work in",
        category="database",
        handler=select_database,
        parameters=params_schema(["database_name"], database_name=string_param("Database name")),
    ),
    FunctionTool(
        name="get_schemas",
        description="List the schemas of the selected database",
        category="database",
        handler=get_schemas,
    ),
    FunctionTool(
        name="select_schema",
        description="Select the schema to work in",
        category="database",
        handler=select_schema,
        parameters=params_schema(["schema_name"], schema_name=string_param("Schema name")),
    ),
    FunctionTool(
        name="get_tables",
        description="List the tables of the selected schema",
        category="database",
        handler=get_tables,
    ),
    FunctionTool(
        name="describe_table",
        description="Show the columns and types of a table in the selected schema",
        category="database",
        handler=describe_table,
        parameters=params_schema(["table_name"], table_name=string_param("Table name")),
    ),
]
