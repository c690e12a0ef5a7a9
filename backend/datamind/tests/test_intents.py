import pytest

from datamind.agents.context import AgentContext
from datamind.agents.intents import INTENT_TOOLS, Intent, classify_intent

@pytest.fixture
def connected():
    return AgentContext(
        session_id="s1",
        user_id="user_1",
        connection_id="conn-1",
        current_database="SALES",
        current_schema="PUBLIC",
        tables=["ORDERS", "CUSTOMERS"],
    )

@pytest.mark.parametrize("text,intent", [
    ("show tables", Intent.LIST_TABLES),
    ("List all tables", Intent.LIST_TABLES),
    ("tables", Intent.LIST_TABLES),
    ("show databases", Intent.LIST_DATABASES),
    ("what are the schemas?", Intent.LIST_SCHEMAS),
    ("show stages", Intent.LIST_STAGES),
    ("show yaml files", Intent.LIST_YAML_FILES),
    ("show yaml content", Intent.SHOW_YAML_CONTENT),
    ("connect to snowflake", Intent.CONNECT),
    ("show context", Intent.SHOW_CONTEXT),
    ("suggest charts", Intent.VISUALIZATION_SUGGESTIONS),
    ("hello, what can you do", Intent.CHAT),
])
def test_commands(text, intent):
    assert classify_intent(text).intent == intent

@pytest.mark.parametrize("text,intent,params", [
    ("use database SALES", Intent.SELECT_DATABASE, {"database_name": "SALES"}),
    ("select schema public", Intent.SELECT_SCHEMA, {"schema_name": "public"}),
    ("use stage @models", Intent.SELECT_STAGE, {"stage_name": "models"}),
    ("describe table orders", Intent.DESCRIBE_TABLE, {"table_name": "orders"}),
    ("load yaml revenue_model.yaml", Intent.LOAD_YAML_FILE, {"filename": "revenue_model.yaml"}),
])
def test_parameterised_selections(text, intent, params):
    match = classify_intent(text)
    assert match.intent == intent
    assert match.params == params

@pytest.mark.parametrize("text", ["yes", "Sure", "ok", "okay", "proceed", "go ahead", "do it", "1", "3"])
def test_confirmations_always_list_tables(text):
    match = classify_intent(text)
    assert match.intent == Intent.CONFIRMATION
    assert match.tool_name == "get_tables"

def test_direct_sql_needs_a_connection(connected):
    sql = "SELECT * FROM orders LIMIT 5;"
    assert classify_intent(sql).intent == Intent.CHAT
    match = classify_intent(sql, connected)
    assert match.intent == Intent.DIRECT_SQL
    assert match.params["sql"] == "SELECT * FROM orders LIMIT 5"
    assert match.tool_name == "execute_sql"

@pytest.mark.parametrize("text", ["use database SALES.PUBLIC", "use schema PUBLIC.ORDERS", "use stage @A.B"])
def test_dotted_names_are_not_single_selections(text):
    assert classify_intent(text).intent == Intent.CHAT

def test_select_database_is_not_mistaken_for_sql(connected):
    assert classify_intent("select database MARKETING", connected).intent == Intent.SELECT_DATABASE

def test_data_question_generates_sql_once_tables_are_loaded(connected):
    question = "How many orders did we ship last month?"
    assert classify_intent(question).intent == Intent.CHAT
    match = classify_intent(question, connected)
    assert match.intent == Intent.GENERATE_SQL
    assert match.params["question"] == question

def test_follow_ups_need_prior_state(connected):
    assert classify_intent("run the query", connected).intent == Intent.CHAT

    connected.last_query_sql = "SELECT 1"
    assert classify_intent("run the query", connected).intent == Intent.EXECUTE_LAST_SQL

    assert classify_intent("summarize the results", connected).intent == Intent.CHAT
    connected.last_query_results = [{"A": 1}]
    assert classify_intent("summarize the results", connected).intent == Intent.SUMMARIZE

    match = classify_intent("create a line chart", connected)
    assert match.intent == Intent.VISUALIZE
    assert match.params["chart_type"] == "line"

def test_every_intent_but_chat_has_one_tool():
    assert set(INTENT_TOOLS) == set(Intent) - {Intent.CHAT}
