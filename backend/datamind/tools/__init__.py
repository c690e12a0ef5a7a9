from datamind.tools.base import FunctionTool, FunctionToolRegistry, ToolEnvironment
from datamind.tools import (
    connection_tools,
    database_tools,
    stage_tools,
    query_tools,
    visualization_tools,
)

ALL_TOOLS = (
    connection_tools.TOOLS
    + database_tools.TOOLS
    + stage_tools.TOOLS
    + query_tools.TOOLS
    + visualization_tools.TOOLS
)

def build_registry(env: ToolEnvironment) -> FunctionToolRegistry:
    return FunctionToolRegistry(env, ALL_TOOLS)

__all__ = ["ALL_TOOLS", "FunctionTool", "FunctionToolRegistry", "ToolEnvironment", "build_registry"]
