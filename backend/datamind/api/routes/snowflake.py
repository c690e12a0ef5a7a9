from fastapi import APIRouter, Depends, status
from typing import List

from datamind.models.schemas import (
    QueryRequest,
    SnowflakeConnectionCreate,
    SnowflakeConnectionResponse,
    SnowflakeConnectionUpdate,
)
from datamind.services.container import ServiceContainer, get_container
from datamind.services.snowflake_service import ConnectionConfig
from datamind.utils.exceptions import NotFoundError, QueryExecutionError
from datamind.utils.formatting import json_safe_rows
from datamind.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)

def _record_values(request) -> dict:
    values = request.model_dump(exclude_unset=True, exclude={"user_id", "is_default"})
    if "schema_name" in values:
        values["schema"] = values.pop("schema_name")
    return values

async def _get_record(container: ServiceContainer, connection_id: str):
    record = await container.storage.get_snowflake_connection(connection_id)
    if record is None:
        raise NotFoundError(f"Snowflake connection {connection_id} not found")
    return record

@router.get("/connections/{user_id}", response_model=List[SnowflakeConnectionResponse])
async def list_connections(user_id: str, container: ServiceContainer = Depends(get_container)):
    records = await container.storage.get_snowflake_connections(user_id)
    return [SnowflakeConnectionResponse.from_orm_connection(r) for r in records]

@router.post("/connections", response_model=SnowflakeConnectionResponse, status_code=status.HTTP_201_CREATED)
async def create_connection(request: SnowflakeConnectionCreate,
                            container: ServiceContainer = Depends(get_container)):
    if await container.storage.get_user(request.user_id) is None:
        raise NotFoundError(f"User {request.user_id} not found")
    values = _record_values(request)
    values["password"] = request.password
    record = await container.storage.create_snowflake_connection(
        request.user_id, values, is_default=request.is_default
    )
    logger.info(f"Stored Snowflake connection {record.id} for {request.user_id}")
    return SnowflakeConnectionResponse.from_orm_connection(record)

@router.put("/connections/{connection_id}", response_model=SnowflakeConnectionResponse)
async def update_connection(connection_id: str, request: SnowflakeConnectionUpdate,
                            container: ServiceContainer = Depends(get_container)):
    await _get_record(container, connection_id)
    record = await container.storage.update_snowflake_connection(connection_id, _record_values(request))
    # Cached sessions still hold the old credentials
    await container.snowflake.close_connection(connection_id)
    return SnowflakeConnectionResponse.from_orm_connection(record)

@router.delete("/connections/{connection_id}")
async def delete_connection(connection_id: str, container: ServiceContainer = Depends(get_container)):
    await container.snowflake.close_connection(connection_id)
    if not await container.storage.delete_snowflake_connection(connection_id):
        raise NotFoundError(f"Snowflake connection {connection_id} not found")
    return {"success": True}

@router.post("/connections/{connection_id}/test")
async def test_connection(connection_id: str, container: ServiceContainer = Depends(get_container)):
    record = await _get_record(container, connection_id)
    result = await container.snowflake.test_connection(ConnectionConfig.from_record(record))
    if result["success"]:
        await container.storage.mark_snowflake_connected(connection_id)
    return result

@router.post("/connections/{connection_id}/default")
async def set_default_connection(connection_id: str, container: ServiceContainer = Depends(get_container)):
    record = await _get_record(container, connection_id)
    await container.storage.set_default_snowflake_connection(record.user_id, connection_id)
    return {"success": True}

async def _ensure_open(container: ServiceContainer, record):
    if not container.snowflake.has_active_connection(record.id):
        await container.snowflake.create_connection(record.id, ConnectionConfig.from_record(record))
        await container.storage.mark_snowflake_connected(record.id)

@router.post("/connections/{connection_id}/execute")
async def execute_query(connection_id: str, request: QueryRequest,
                        container: ServiceContainer = Depends(get_container)):
    record = await _get_record(container, connection_id)
    try:
        await _ensure_open(container, record)
        result = await container.snowflake.execute_query(connection_id, request.sql)
    except QueryExecutionError as e:
        return {"success": False, "message": e.message}
    return {
        "success": True,
        "rows": json_safe_rows(result.rows),
        "columns": result.column_names,
        "metadata": {
            "executionTime": result.execution_time_ms,
            "rowCount": result.row_count,
            "queryId": result.query_id,
        },
    }

@router.get("/connections/{connection_id}/schema")
async def get_schema(connection_id: str, container: ServiceContainer = Depends(get_container)):
    record = await _get_record(container, connection_id)
    try:
        await _ensure_open(container, record)
        info = await container.snowflake.get_schema_info(connection_id)
    except QueryExecutionError as e:
        return {"success": False, "message": e.message}
    return {"success": True, **info}
