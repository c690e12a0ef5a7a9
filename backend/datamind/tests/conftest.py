from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from langchain_core.messages import AIMessage

from datamind.agents.context import InMemorySessionStore
from datamind.config import settings
from datamind.database.connection import DatabaseManager
from datamind.services.container import build_container
from datamind.services.snowflake_service import ColumnInfo, QueryResult
from datamind.utils.exceptions import LLMUnavailableError, NotConnectedError

TABLE_ROWS = [{"name": "ORDERS"}, {"name": "CUSTOMERS"}, {"name": "PRODUCTS"}]
DATABASE_ROWS = [{"name": "SALES"}, {"name": "MARKETING"}]
SALES_ROWS = [
    {"REGION": region, "TOTAL": total}
    for region, total in [
        ("North", 120), ("South", 80), ("North", 95), ("East", 60), ("South", 70),
        ("East", 55), ("North", 100), ("South", 65), ("East", 40), ("North", 110),
    ]
]

class StubSnowflake:
    """In-process stand-in for the Snowflake client wrapper"""

    def __init__(self, responses: Optional[Dict[str, List[dict]]] = None):
        self.responses = responses if responses is not None else {
            "SHOW TABLES": TABLE_ROWS,
            "SHOW DATABASES": DATABASE_ROWS,
            "SHOW SCHEMAS": [{"name": "PUBLIC"}, {"name": "STAGING"}],
            "SELECT": SALES_ROWS,
        }
        self.connected = set()
        self.queries: List[str] = []
        self.fail_connect = False
        # SQL prefix -> exception raised instead of returning rows
        self.failures: Dict[str, Exception] = {}

    def has_active_connection(self, connection_id):
        return bool(connection_id) and connection_id in self.connected

    def active_connection_count(self):
        return len(self.connected)

    async def create_connection(self, connection_id, config):
        if self.fail_connect:
            raise RuntimeError("login failed")
        self.connected.add(connection_id)

    async def execute_query(self, connection_id, sql, database=None, schema=None):
        if connection_id not in self.connected:
            raise NotConnectedError()
        self.queries.append(sql)
        for prefix, error in self.failures.items():
            if sql.upper().startswith(prefix):
                raise error
        for prefix, rows in self.responses.items():
            if sql.upper().startswith(prefix):
                columns = [ColumnInfo(name=k) for k in rows[0]] if rows else []
                return QueryResult(rows=rows, columns=columns, row_count=len(rows), execution_time_ms=12.5)
        return QueryResult()

    async def get_table_structure(self, connection_id, table, database=None, schema=None):
        return [
            {"name": "ID", "type": "NUMBER(38,0)", "nullable": False, "default": None, "comment": None},
            {"name": "REGION", "type": "VARCHAR(50)", "nullable": True, "default": None, "comment": None},
        ]

    async def download_stage_file(self, connection_id, stage, filename, database=None, schema=None):
        return "name: revenue\ntables:\n  - name: orders\n  - name: customers\n"

    async def close_connection(self, connection_id, forget=True):
        self.connected.discard(connection_id)

    async def close_all(self):
        self.connected.clear()

class StubLLM:
    model_name = "stub-model"

    def __init__(self, reply: Optional[AIMessage] = None, text: str = "SELECT 1", fail: bool = False):
        self.reply = reply
        self.text = text
        self.fail = fail
        self.prompts: List[str] = []
        self.tool_calls: List[tuple] = []

    @property
    def is_configured(self):
        return not self.fail

    def get_available_models(self):
        return [] if self.fail else [{"id": self.model_name, "default": True}]

    async def generate_response(self, prompt, system_prompt=None, model_id=None):
        if self.fail:
            raise LLMUnavailableError("LLM offline")
        self.prompts.append(prompt)
        return self.text

    async def chat_with_tools(self, messages, tools, model_id=None):
        if self.fail:
            raise LLMUnavailableError("LLM offline")
        self.tool_calls.append((messages, tools))
        return self.reply or AIMessage(content="Hello from the model")

CONNECTION_VALUES = {
    "name": "Primary",
    "account": "acme-xy123",
    "username": "analyst",
    "password": "secret",
    "database": "SALES",
    "schema": "PUBLIC",
    "warehouse": "COMPUTE_WH",
}

@pytest_asyncio.fixture
async def db():
    manager = DatabaseManager("sqlite+aiosqlite://")
    await manager.initialize()
    yield manager
    await manager.close()

@pytest.fixture
def snowflake():
    return StubSnowflake()

@pytest.fixture
def llm():
    return StubLLM()

@pytest_asyncio.fixture
async def container(db, snowflake, llm):
    return build_container(db=db, snowflake=snowflake, llm=llm, store=InMemorySessionStore())

@pytest_asyncio.fixture
async def default_connection(container):
    return await container.storage.create_snowflake_connection(settings.DEFAULT_USER_ID, dict(CONNECTION_VALUES))
