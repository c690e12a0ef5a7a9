from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import asyncio
import gzip
import logging
import os
import tempfile
import time

import snowflake.connector
from snowflake.connector import DictCursor
from snowflake.connector.errors import Error as SnowflakeError

from datamind.config import settings
from datamind.utils.exceptions import NotConnectedError, QueryExecutionError
from datamind.utils.validators import safe_identifier

logger = logging.getLogger(__name__)

PAT_AUTHENTICATORS = {"PAT", "PROGRAMMATIC_ACCESS_TOKEN"}

@dataclass(frozen=True)
class ConnectionConfig:
    """Credentials and defaults for one Snowflake account"""
    account: str
    username: str
    password: str
    database: Optional[str] = None
    schema: Optional[str] = None
    warehouse: Optional[str] = None
    role: Optional[str] = None
    authenticator: str = "SNOWFLAKE"

    @property
    def uses_pat(self) -> bool:
        return self.authenticator.upper() in PAT_AUTHENTICATORS

    @classmethod
    def from_record(cls, record) -> "ConnectionConfig":
        return cls(
            account=record.account,
            username=record.username,
            password=record.password,
            database=record.database,
            schema=record.schema,
            warehouse=record.warehouse,
            role=record.role,
            authenticator=record.authenticator or "SNOWFLAKE",
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "account": self.account,
            "user": self.username,
            "login_timeout": settings.SNOWFLAKE_LOGIN_TIMEOUT,
            "client_session_keep_alive": not self.uses_pat,
        }
        if self.uses_pat:
            kwargs["authenticator"] = "PROGRAMMATIC_ACCESS_TOKEN"
            kwargs["token"] = self.password
        else:
            kwargs["password"] = self.password
            if self.authenticator and self.authenticator.upper() != "SNOWFLAKE":
                kwargs["authenticator"] = self.authenticator.lower()
        for key in ("database", "schema", "warehouse", "role"):
            value = getattr(self, key)
            if value:
                kwargs[key] = value
        return kwargs

@dataclass
class ColumnInfo:
    name: str
    type_code: Optional[int] = None
    nullable: Optional[bool] = None

@dataclass
class QueryResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[ColumnInfo] = field(default_factory=list)
    execution_time_ms: float = 0.0
    row_count: int = 0
    query_id: Optional[str] = None

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

def row_value(row: Dict[str, Any], key: str) -> Any:
    """Read a column from a SHOW/DESCRIBE row regardless of key case"""
    if key in row:
        return row[key]
    return row.get(key.upper(), row.get(key.lower()))

class SnowflakeService:
    """Snowflake client wrapper with connections cached by connection id"""

    def __init__(self):
        self._connections: Dict[str, Any] = {}
        self._configs: Dict[str, ConnectionConfig] = {}

    def _connect(self, config: ConnectionConfig):
        return snowflake.connector.connect(**config.connect_kwargs())

    def _run(self, conn, sql: str, database: Optional[str] = None,
             schema: Optional[str] = None) -> QueryResult:
        started = time.perf_counter()
        cursor = conn.cursor(DictCursor)
        try:
            if database:
                cursor.execute(f"USE DATABASE {safe_identifier(database, 'database')}")
            if schema:
                cursor.execute(f"USE SCHEMA {safe_identifier(schema, 'schema')}")
            cursor.execute(sql)
            rows = cursor.fetchall() if cursor.description else []
            columns = [
                ColumnInfo(name=d.name, type_code=d.type_code, nullable=d.is_nullable)
                for d in (cursor.description or [])
            ]
            return QueryResult(
                rows=[dict(r) for r in rows],
                columns=columns,
                execution_time_ms=round((time.perf_counter() - started) * 1000, 2),
                row_count=len(rows),
                query_id=cursor.sfqid,
            )
        finally:
            cursor.close()

    async def test_connection(self, config: ConnectionConfig) -> Dict[str, Any]:
        """Open a throwaway connection and report the server version"""

        def _probe():
            conn = self._connect(config)
            try:
                result = self._run(conn, "SELECT CURRENT_VERSION() AS VERSION")
                return row_value(result.rows[0], "VERSION") if result.rows else None
            finally:
                conn.close()

        try:
            version = await asyncio.to_thread(_probe)
            return {"success": True, "message": f"Connected to Snowflake {version or ''}".strip()}
        except SnowflakeError as e:
            logger.warning(f"Snowflake connection test failed for {config.account}: {e}")
            return {"success": False, "message": str(e)}

    async def create_connection(self, connection_id: str, config: ConnectionConfig) -> None:
        """Register a connection; non-PAT connections are opened and cached now"""
        self._configs[connection_id] = config
        if config.uses_pat:
            logger.info(f"Registered PAT connection {connection_id}; connecting per query")
            return
        if connection_id in self._connections:
            return
        try:
            conn = await asyncio.to_thread(self._connect, config)
        except SnowflakeError as e:
            self._configs.pop(connection_id, None)
            raise QueryExecutionError(str(e), details={"connection_id": connection_id})
        self._connections[connection_id] = conn
        logger.info(f"Opened Snowflake connection {connection_id} ({config.account})")

    async def execute_query(self, connection_id: Optional[str], sql: str,
                            database: Optional[str] = None,
                            schema: Optional[str] = None) -> QueryResult:
        if not connection_id or connection_id not in self._configs:
            raise NotConnectedError()

        config = self._configs[connection_id]
        if config.uses_pat:
            return await self.execute_query_with_config(config, sql, database, schema)

        conn = self._connections.get(connection_id)
        if conn is None or conn.is_closed():
            await self.close_connection(connection_id, forget=False)
            await self.create_connection(connection_id, config)
            conn = self._connections[connection_id]

        try:
            return await asyncio.to_thread(self._run, conn, sql, database, schema)
        except SnowflakeError as e:
            logger.error(f"Query failed on {connection_id}: {e}")
            raise QueryExecutionError(str(e), details={"sql": sql})

    async def execute_query_with_config(self, config: ConnectionConfig, sql: str,
                                        database: Optional[str] = None,
                                        schema: Optional[str] = None) -> QueryResult:
        """Run one statement on a connection opened just for it"""

        def _once():
            conn = self._connect(config)
            try:
                return self._run(conn, sql, database, schema)
            finally:
                conn.close()

        try:
            return await asyncio.to_thread(_once)
        except SnowflakeError as e:
            logger.error(f"One-shot query failed for {config.account}: {e}")
            raise QueryExecutionError(str(e), details={"sql": sql})

    async def get_schema_info(self, connection_id: str) -> Dict[str, Any]:
        """Databases, plus schemas and tables of the configured database"""
        config = self._configs.get(connection_id)
        databases = await self.execute_query(connection_id, "SHOW DATABASES")
        info: Dict[str, Any] = {
            "databases": [row_value(r, "name") for r in databases.rows],
            "schemas": [],
            "tables": [],
        }
        if config and config.database:
            db = safe_identifier(config.database, "database")
            schemas = await self.execute_query(connection_id, f"SHOW SCHEMAS IN DATABASE {db}")
            info["schemas"] = [row_value(r, "name") for r in schemas.rows]
            if config.schema:
                target = f"{db}.{safe_identifier(config.schema, 'schema')}"
                tables = await self.execute_query(connection_id, f"SHOW TABLES IN SCHEMA {target}")
                info["tables"] = [
                    {"name": row_value(r, "name"), "rows": row_value(r, "rows"), "kind": row_value(r, "kind")}
                    for r in tables.rows
                ]
        return info

    async def get_table_structure(self, connection_id: str, table: str,
                                  database: Optional[str] = None,
                                  schema: Optional[str] = None) -> List[Dict[str, Any]]:
        parts = [p for p in (database, schema) if p]
        qualified = ".".join([safe_identifier(p) for p in parts] + [safe_identifier(table, "table")])
        result = await self.execute_query(connection_id, f"DESCRIBE TABLE {qualified}")
        return [
            {
                "name": row_value(r, "name"),
                "type": row_value(r, "type"),
                "nullable": row_value(r, "null?") == "Y",
                "default": row_value(r, "default"),
                "comment": row_value(r, "comment"),
            }
            for r in result.rows
        ]

    async def download_stage_file(self, connection_id: str, stage: str, filename: str,
                                  database: Optional[str] = None,
                                  schema: Optional[str] = None) -> str:
        """Fetch a staged file with GET and return its text"""
        if not connection_id or connection_id not in self._configs:
            raise NotConnectedError()

        parts = [safe_identifier(p) for p in (database, schema) if p]
        stage_ref = ".".join(parts + [safe_identifier(stage, "stage")])
        safe_name = os.path.basename(filename)

        with tempfile.TemporaryDirectory() as target:
            local_uri = "file://" + target.replace(os.sep, "/")
            await self.execute_query(connection_id, f"GET @{stage_ref}/{safe_name} '{local_uri}'")
            downloaded = sorted(os.listdir(target))
            if not downloaded:
                raise QueryExecutionError(f"File {safe_name} not found in stage {stage}")
            path = os.path.join(target, downloaded[0])
            if path.endswith(".gz"):
                with gzip.open(path, "rt", encoding="utf-8") as fh:
                    return fh.read()
            with open(path, "r", encoding="utf-8") as fh:
                return fh.read()

    async def close_connection(self, connection_id: str, forget: bool = True) -> None:
        conn = self._connections.pop(connection_id, None)
        if forget:
            self._configs.pop(connection_id, None)
        if conn is None:
            return
        try:
            await asyncio.to_thread(conn.close)
            logger.info(f"Closed Snowflake connection {connection_id}")
        except SnowflakeError as e:
            logger.warning(f"Error closing Snowflake connection {connection_id}: {e}")

    async def close_all(self) -> None:
        for connection_id in list(self._configs):
            await self.close_connection(connection_id)

    def has_active_connection(self, connection_id: Optional[str]) -> bool:
        return bool(connection_id) and connection_id in self._configs

    def active_connection_count(self) -> int:
        return len(self._configs)
