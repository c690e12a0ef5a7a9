from typing import Dict, Any, List
import json
import logging

from datamind.tools.base import FunctionTool, params_schema, string_param
from datamind.utils.formatting import json_safe_rows, markdown_table
from datamind.utils.validators import strip_code_fences

logger = logging.getLogger(__name__)

SQL_SYSTEM_PROMPT = (
    "You are an expert Snowflake SQL engineer. Reply with a single valid Snowflake "
    "SQL statement and nothing else. Prefer fully qualified table names and add a "
    "LIMIT to exploratory queries."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a data analyst. Summarise query results for a business audience "
    "in a few bullet points, citing concrete numbers."
)

SUMMARY_ROW_LIMIT = 50
YAML_CONTEXT_CHARS = 6000

async def _schema_context(env, context) -> str:
    """Describe the first few loaded tables for the SQL prompt"""
    sections: List[str] = []
    for table in context.tables[:env.schema_context_tables]:
        try:
            columns = await env.snowflake.get_table_structure(
                context.connection_id, table, context.current_database, context.current_schema
            )
        except Exception as e:
            logger.warning(f"Skipping schema context for {table}: {e}")
            continue
        column_list = ", ".join(f"{c['name']} {c['type']}" for c in columns)
        sections.append(f"{context.current_database}.{context.current_schema}.{table}({column_list})")
    if len(context.tables) > env.schema_context_tables:
        others = ", ".join(context.tables[env.schema_context_tables:])
        sections.append(f"Other tables: {others}")
    return "\n".join(sections)

async def generate_sql(env, context, params: Dict[str, Any]) -> str:
    env.require_selection(context)
    question = params.get("question", "").strip()
    if not question:
        return "Please describe the data you want to query."

    prompt_parts = [
        f"Database: {context.current_database}",
        f"Schema: {context.current_schema}",
        "Tables:",
        await _schema_context(env, context) or "(no tables loaded)",
    ]
    if context.yaml_content:
        prompt_parts += ["Semantic model:", context.yaml_content[:YAML_CONTEXT_CHARS]]
    prompt_parts += ["", f"Question: {question}"]

    response = await env.llm.generate_response("\n".join(prompt_parts), system_prompt=SQL_SYSTEM_PROMPT)
    sql = strip_code_fences(response)
    if not sql:
        return "I could not generate a SQL query for that question."

    await env.contexts.update_context(context, last_query_sql=sql)
    return (
        f"Generated SQL:\n\n```sql\n{sql}\n```\n\n"
        "Say `run the query` to execute it."
    )

async def execute_sql(env, context, params: Dict[str, Any]) -> str:
    sql = (params.get("sql") or context.last_query_sql or "").strip()
    if not sql:
        return "No SQL query to execute. Generate or provide a query first."
    connection_id = env.require_connection(context)

    result = await env.snowflake.execute_query(
        connection_id, sql, database=context.current_database, schema=context.current_schema
    )
    rows = json_safe_rows(result.rows)
    columns = result.column_names or (list(rows[0].keys()) if rows else [])

    draft = env.visualizer.create_visualization(rows, sql, params.get("user_request", ""))
    await env.contexts.update_context(
        context,
        last_query_sql=sql,
        last_query_columns=columns,
        last_query_results=rows,
        last_query_execution_ms=result.execution_time_ms,
        query_runs=context.query_runs + 1,
        pending_visualization=draft.model_dump() if draft else None,
    )

    if not rows:
        return f"Query executed successfully in {result.execution_time_ms} ms. No rows returned."
    return (
        f"Query executed successfully in {result.execution_time_ms} ms. "
        f"Returned {result.row_count} rows.\n\n"
        + markdown_table(columns, rows, env.preview_rows)
    )

async def generate_summary(env, context, params: Dict[str, Any]) -> str:
    if not context.last_query_results:
        return "No query results to summarize. Run a query first."
    sample = context.last_query_results[:SUMMARY_ROW_LIMIT]
    prompt = (
        f"SQL:\n{context.last_query_sql}\n\n"
        f"Columns: {', '.join(context.last_query_columns)}\n"
        f"Total rows: {len(context.last_query_results)}\n"
        f"First {len(sample)} rows:\n{json.dumps(sample, default=str)}"
    )
    if params.get("focus"):
        prompt += f"\n\nFocus on: {params['focus']}"
    summary = await env.llm.generate_response(prompt, system_prompt=SUMMARY_SYSTEM_PROMPT)
    return f"**Summary**\n\n{summary}"

TOOLS = [
    FunctionTool(
        name="generate_sql",
        description="Write a Snowflake SQL query answering a natural-language question about the selected schema",
        category="query",
        handler=generate_sql,
        parameters=params_schema(["question"], question=string_param("The user's question")),
    ),
    FunctionTool(
        name="execute_sql",
        description="Execute a SQL query (the last generated one if none is given) and show the results",
        category="query",
        handler=execute_sql,
        parameters=params_schema(sql=string_param("SQL to run; optional")),
    ),
    FunctionTool(
        name="generate_summary",
        description="Summarise the results of the last query",
        category="query",
        handler=generate_summary,
        parameters=params_schema(focus=string_param("Aspect to focus on; optional")),
    ),
]
