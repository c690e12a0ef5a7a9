import pytest

from datamind.agents.context import AgentContext
from datamind.utils.exceptions import NOT_CONNECTED_MESSAGE, SELECTION_REQUIRED_MESSAGE

def _context(connected=True, **values):
    context = AgentContext(session_id="s1", user_id="user_1", **values)
    if connected:
        context.connection_id = "c1"
    return context

@pytest.fixture
def registry(container, snowflake):
    snowflake.connected.add("c1")
    return container.registry

@pytest.mark.asyncio
async def test_tools_need_a_connection(container):
    context = _context(connected=False)
    assert await container.registry.execute("get_databases", context, {}) == NOT_CONNECTED_MESSAGE

@pytest.mark.asyncio
async def test_tools_need_database_and_schema(registry):
    context = _context(current_database="SALES")
    assert await registry.execute("get_tables", context, {}) == SELECTION_REQUIRED_MESSAGE

@pytest.mark.asyncio
async def test_unknown_tool(registry):
    assert await registry.execute("drop_everything", _context(), {}) == "Unknown function: drop_everything"

@pytest.mark.asyncio
async def test_select_database_resets_schema_and_rejects_bad_names(registry, snowflake):
    context = _context(current_database="OLD", current_schema="PUBLIC", tables=["X"])

    text = await registry.execute("select_database", context, {"database_name": "sales"})
    assert "**sales**" in text
    assert context.current_database == "sales"
    assert context.current_schema is None
    assert context.tables == []
    assert snowflake.queries[-1] == "USE DATABASE sales"

    text = await registry.execute("select_database", context, {"database_name": "x; drop table y"})
    assert text.startswith("Error executing select_database:")

@pytest.mark.asyncio
async def test_get_tables_lists_and_stores_names(registry, snowflake):
    context = _context(current_database="SALES", current_schema="PUBLIC")

    text = await registry.execute("get_tables", context, {})

    assert text.startswith("Found 3 tables in SALES.PUBLIC:")
    assert "1. ORDERS" in text and "3. PRODUCTS" in text
    assert context.tables == ["ORDERS", "CUSTOMERS", "PRODUCTS"]
    assert snowflake.queries[-1] == "SHOW TABLES IN SCHEMA SALES.PUBLIC"

@pytest.mark.asyncio
async def test_execute_sql_previews_rows_and_builds_chart(registry, snowflake):
    snowflake.responses["SELECT"] = [{"REGION": f"R{i}", "TOTAL": i} for i in range(15)]
    context = _context(current_database="SALES", current_schema="PUBLIC")

    text = await registry.execute("execute_sql", context, {"sql": "SELECT REGION, TOTAL FROM ORDERS"})

    assert text.startswith("Query executed successfully in 12.5 ms. Returned 15 rows.")
    assert "| R9 | 9 |" in text
    assert "| R10 | 10 |" not in text
    assert "... and 5 more rows." in text
    assert context.last_query_sql == "SELECT REGION, TOTAL FROM ORDERS"
    assert context.last_query_columns == ["REGION", "TOTAL"]
    assert len(context.last_query_results) == 15
    assert context.pending_visualization["chart_type"] == "bar"

@pytest.mark.asyncio
async def test_execute_sql_without_query(registry):
    text = await registry.execute("execute_sql", _context(), {})
    assert text == "No SQL query to execute. Generate or provide a query first."

@pytest.mark.asyncio
async def test_generate_sql_strips_fences_and_remembers_query(container, llm):
    container.snowflake.connected.add("c1")
    llm.text = "```sql\nSELECT REGION, SUM(TOTAL) FROM SALES.PUBLIC.ORDERS GROUP BY REGION\n```"
    context = _context(current_database="SALES", current_schema="PUBLIC", tables=["ORDERS"])

    text = await container.registry.execute("generate_sql", context, {"question": "revenue by region"})

    assert context.last_query_sql == "SELECT REGION, SUM(TOTAL) FROM SALES.PUBLIC.ORDERS GROUP BY REGION"
    assert "```sql\nSELECT REGION" in text
    assert "SALES.PUBLIC.ORDERS(ID NUMBER(38,0), REGION VARCHAR(50))" in llm.prompts[-1]
    assert "Question: revenue by region" in llm.prompts[-1]

@pytest.mark.asyncio
async def test_summary_and_chart_need_results(registry):
    context = _context()
    assert await registry.execute("generate_summary", context, {}) == (
        "No query results to summarize. Run a query first."
    )
    assert await registry.execute("visualize_data", context, {}) == (
        "No query results to visualize. Run a query first."
    )

@pytest.mark.asyncio
async def test_visualize_data_honours_requested_chart_type(registry):
    rows = [
        {"REGION": region, "TOTAL": total}
        for region, total in [("North", 10), ("South", 7), ("East", 4), ("North", 3), ("South", 2), ("East", 1)]
    ]
    context = _context(last_query_results=rows, last_query_sql="SELECT REGION, TOTAL FROM ORDERS")

    text = await registry.execute("visualize_data", context, {"chart_type": "pie", "user_request": "chart it"})

    assert text.startswith("Created a **pie** chart")
    assert context.pending_visualization["chart_type"] == "pie"

@pytest.mark.asyncio
async def test_load_yaml_file_requires_stage_then_loads(registry):
    context = _context(current_database="SALES", current_schema="PUBLIC")
    assert await registry.execute("load_yaml_file", context, {"filename": "model.yaml"}) == (
        "No stage selected. Please select a stage first."
    )

    context.current_stage = "MODELS"
    text = await registry.execute("load_yaml_file", context, {"filename": "model.yaml"})

    assert text.startswith("Loaded **model.yaml**")
    assert "- Model: revenue" in text
    assert "- Tables defined: 2" in text
    assert context.yaml_filename == "model.yaml"
    assert "customers" in context.yaml_content

    shown = await registry.execute("get_yaml_content", context, {})
    assert shown.startswith("**model.yaml**")

@pytest.mark.asyncio
async def test_connect_without_stored_connection(container):
    text = await container.registry.execute("connect_to_snowflake", _context(connected=False), {})
    assert text.startswith("No Snowflake connection is configured.")

@pytest.mark.asyncio
async def test_connect_uses_default_connection(container, default_connection):
    context = _context(connected=False)

    text = await container.registry.execute("connect_to_snowflake", context, {})

    assert text.startswith("Connected to Snowflake account **acme-xy123** using **Primary**.")
    assert context.connection_id == default_connection.id
    assert context.current_database == "SALES"
    assert context.current_schema == "PUBLIC"
    assert container.snowflake.has_active_connection(default_connection.id)

def test_openai_tool_descriptions(container):
    tools = container.registry.to_openai_tools(["get_tables", "select_schema", "missing"])
    assert [t["function"]["name"] for t in tools] == ["get_tables", "select_schema"]
    assert tools[1]["function"]["parameters"]["required"] == ["schema_name"]
