from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Callable, Awaitable, Iterable
import logging

from datamind.config import settings
from datamind.utils.exceptions import (
    BaseAppException,
    NotConnectedError,
    SelectionRequiredError,
)

logger = logging.getLogger(__name__)

@dataclass
class ToolEnvironment:
    """Collaborators every tool handler may use"""
    snowflake: Any
    storage: Any
    llm: Any
    contexts: Any
    visualizer: Any
    preview_rows: int = settings.QUERY_PREVIEW_ROWS
    schema_context_tables: int = settings.SCHEMA_CONTEXT_TABLES

    def require_connection(self, context) -> str:
        if not self.snowflake.has_active_connection(context.connection_id):
            raise NotConnectedError()
        return context.connection_id

    def require_selection(self, context) -> None:
        self.require_connection(context)
        if not context.current_database or not context.current_schema:
            raise SelectionRequiredError()

ToolHandler = Callable[[ToolEnvironment, Any, Dict[str, Any]], Awaitable[str]]

@dataclass
class FunctionTool:
    name: str
    description: str
    category: str
    handler: ToolHandler
    parameters: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_openai_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

def params_schema(required: Iterable[str] = (), **properties: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(required)}

def string_param(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}

class FunctionToolRegistry:
    """Named tools that operate on an agent context and answer in Markdown"""

    def __init__(self, env: ToolEnvironment, tools: Iterable[FunctionTool] = ()):
        self.env = env
        self._tools: Dict[str, FunctionTool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: FunctionTool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name} is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[FunctionTool]:
        return self._tools.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def to_openai_tools(self, names: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        selected = self._tools if names is None else [n for n in names if n in self._tools]
        return [self._tools[n].to_openai_tool() for n in selected]

    async def execute(self, name: str, context, params: Optional[Dict[str, Any]] = None) -> str:
        tool = self._tools.get(name)
        if tool is None:
            return f"Unknown function: {name}"

        logger.info(f"Executing tool {name} for session {context.session_id}")
        try:
            return await tool.handler(self.env, context, params or {})
        except (NotConnectedError, SelectionRequiredError) as e:
            return e.message
        except BaseAppException as e:
            logger.warning(f"Tool {name} failed: {e.message}")
            return f"Error executing {name}: {e.message}"
        except Exception as e:
            logger.error(f"Unexpected error in tool {name}: {str(e)}", exc_info=True)
            return f"Error executing {name}: {str(e)}"
