"""Intent classification for chat messages.

Every message is classified into exactly one ``Intent``. All intents except
``CHAT`` are answered by a single function tool, listed in ``INTENT_TOOLS``;
``CHAT`` goes to the LLM. Rules are checked in a fixed order and each
pattern is anchored, so a message matches a rule only when the whole
message reads as that command.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple, Pattern
import re

from datamind.utils.validators import detect_sql_statement

class Intent(str, Enum):
    CONNECT = "connect"
    SHOW_CONTEXT = "show_context"
    LIST_DATABASES = "list_databases"
    LIST_SCHEMAS = "list_schemas"
    LIST_TABLES = "list_tables"
    LIST_STAGES = "list_stages"
    LIST_YAML_FILES = "list_yaml_files"
    SHOW_YAML_CONTENT = "show_yaml_content"
    SELECT_DATABASE = "select_database"
    SELECT_SCHEMA = "select_schema"
    SELECT_STAGE = "select_stage"
    DESCRIBE_TABLE = "describe_table"
    LOAD_YAML_FILE = "load_yaml_file"
    CONFIRMATION = "confirmation"
    GENERATE_SQL = "generate_sql"
    EXECUTE_LAST_SQL = "execute_last_sql"
    DIRECT_SQL = "direct_sql"
    SUMMARIZE = "summarize"
    VISUALIZE = "visualize"
    VISUALIZATION_SUGGESTIONS = "visualization_suggestions"
    CHAT = "chat"

INTENT_TOOLS: Dict[Intent, str] = {
    Intent.CONNECT: "connect_to_snowflake",
    Intent.SHOW_CONTEXT: "get_current_context",
    Intent.LIST_DATABASES: "get_databases",
    Intent.LIST_SCHEMAS: "get_schemas",
    Intent.LIST_TABLES: "get_tables",
    Intent.LIST_STAGES: "get_stages",
    Intent.LIST_YAML_FILES: "get_yaml_files",
    Intent.SHOW_YAML_CONTENT: "get_yaml_content",
    Intent.SELECT_DATABASE: "select_database",
    Intent.SELECT_SCHEMA: "select_schema",
    Intent.SELECT_STAGE: "select_stage",
    Intent.DESCRIBE_TABLE: "describe_table",
    Intent.LOAD_YAML_FILE: "load_yaml_file",
    # Bare confirmations always list tables, whatever was asked before
    Intent.CONFIRMATION: "get_tables",
    Intent.GENERATE_SQL: "generate_sql",
    Intent.EXECUTE_LAST_SQL: "execute_sql",
    Intent.DIRECT_SQL: "execute_sql",
    Intent.SUMMARIZE: "generate_summary",
    Intent.VISUALIZE: "visualize_data",
    Intent.VISUALIZATION_SUGGESTIONS: "get_visualization_suggestions",
}

@dataclass
class IntentMatch:
    intent: Intent
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def tool_name(self) -> Optional[str]:
        return INTENT_TOOLS.get(self.intent)

_NAME = r'["`]?([A-Za-z_][A-Za-z0-9_$]*)["`]?'
_PLEASE = r'(?:please\s+)?'
_LIST_VERB = r'(?:(?:show|list|get|display|what are)(?:\s+me)?(?:\s+the)?(?:\s+all)?(?:\s+available)?\s+)?'

# Parameterised selections
SELECTION_RULES: List[Tuple[Intent, Pattern, str]] = [
    (Intent.SELECT_DATABASE,
     re.compile(rf'^{_PLEASE}(?:use|select|choose|switch to)\s+(?:the\s+)?database\s+{_NAME}$', re.I),
     "database_name"),
    (Intent.SELECT_SCHEMA,
     re.compile(rf'^{_PLEASE}(?:use|select|choose|switch to)\s+(?:the\s+)?schema\s+{_NAME}$', re.I),
     "schema_name"),
    (Intent.SELECT_STAGE,
     re.compile(rf'^{_PLEASE}(?:use|select|choose|switch to)\s+(?:the\s+)?stage\s+@?{_NAME}$', re.I),
     "stage_name"),
    (Intent.DESCRIBE_TABLE,
     re.compile(rf'^{_PLEASE}(?:describe|desc|show structure of|show columns (?:of|in))\s+(?:the\s+)?(?:table\s+)?{_NAME}$', re.I),
     "table_name"),
    (Intent.LOAD_YAML_FILE,
     re.compile(r'^(?:please\s+)?(?:load|open|read)\s+(?:the\s+)?(?:yaml\s+)?(?:file\s+)?["`]?([\w.\-]+\.ya?ml)["`]?$', re.I),
     "filename"),
]

# Parameterless commands
COMMAND_RULES: List[Tuple[Intent, Pattern]] = [
    (Intent.CONNECT, re.compile(rf'^{_PLEASE}(?:connect|reconnect)(?:\s+(?:me\s+)?to)?(?:\s+snowflake)?$', re.I)),
    (Intent.SHOW_CONTEXT, re.compile(rf'^{_PLEASE}(?:show|get|what is)?\s*(?:the\s+)?(?:current\s+)?(?:context|status|where am i)$', re.I)),
    (Intent.LIST_DATABASES, re.compile(rf'^{_PLEASE}{_LIST_VERB}databases$', re.I)),
    (Intent.LIST_SCHEMAS, re.compile(rf'^{_PLEASE}{_LIST_VERB}schemas$', re.I)),
    (Intent.LIST_TABLES, re.compile(rf'^{_PLEASE}{_LIST_VERB}tables$', re.I)),
    (Intent.LIST_STAGES, re.compile(rf'^{_PLEASE}{_LIST_VERB}stages$', re.I)),
    (Intent.LIST_YAML_FILES, re.compile(rf'^{_PLEASE}{_LIST_VERB}(?:yaml|yml)\s+files$', re.I)),
    (Intent.SHOW_YAML_CONTENT, re.compile(rf'^{_PLEASE}(?:show|display|view)\s+(?:the\s+)?(?:yaml|yml)(?:\s+(?:content|file|model))?$', re.I)),
    (Intent.VISUALIZATION_SUGGESTIONS, re.compile(rf'^{_PLEASE}(?:suggest|recommend)\s+(?:some\s+)?(?:charts|visuali[sz]ations)$', re.I)),
]

CONFIRMATION_WORDS = {"yes", "y", "sure", "ok", "okay", "proceed", "go ahead", "do it", "yes please"}
_NUMBER_SELECTION = re.compile(r'^\d+$')

EXECUTE_PATTERN = re.compile(r'^(?:please\s+)?(?:execute|run)\s+(?:the\s+|that\s+|this\s+|it\s*)?(?:sql|query)?(?:\s+again)?$', re.I)
SUMMARIZE_PATTERN = re.compile(r'^(?:please\s+)?(?:summari[sz]e|give me a summary of)(?:\s+(?:the|these|those))?(?:\s+(?:results|data))?$', re.I)
VISUALIZE_PATTERN = re.compile(
    r'^(?:please\s+)?(?:visuali[sz]e|chart|plot|graph|(?:create|make|show|draw)\s+(?:me\s+)?(?:a\s+)?(?:bar |line |pie |scatter )?(?:chart|graph|plot|histogram|visuali[sz]ation))\b',
    re.I,
)
CHART_TYPE_PATTERN = re.compile(r'\b(bar|line|pie|scatter|histogram)\b', re.I)

# Phrases that mark a natural-language question about the data
QUERY_INDICATORS = re.compile(
    r'\b(how many|how much|count|total|sum|average|avg|top \d+|top|list all|which|what (?:is|are|was|were)|'
    r'show me|find|compare|trend|by month|by year|per|highest|lowest|most|least|revenue|sales)\b',
    re.I,
)

def _normalize(text: str) -> str:
    return re.sub(r'\s+', ' ', (text or '').strip()).rstrip('?.!').strip()

def is_confirmation(text: str) -> bool:
    normalized = _normalize(text).lower()
    return normalized in CONFIRMATION_WORDS or bool(_NUMBER_SELECTION.match(normalized))

def classify_intent(text: str, context=None) -> IntentMatch:
    """Map a chat message to exactly one intent.

    ``context`` is the session's agent context; intents that need prior state
    (a connection, loaded tables, earlier SQL or results) only fire when that
    state exists.
    """
    normalized = _normalize(text)
    if not normalized:
        return IntentMatch(Intent.CHAT)

    for intent, pattern, param in SELECTION_RULES:
        match = pattern.match(normalized)
        if match:
            return IntentMatch(intent, {param: match.group(1)})

    for intent, pattern in COMMAND_RULES:
        if pattern.match(normalized):
            return IntentMatch(intent)

    if is_confirmation(normalized):
        return IntentMatch(Intent.CONFIRMATION)

    if context is None:
        return IntentMatch(Intent.CHAT)
    connected = bool(context.connection_id)

    if context.last_query_sql and EXECUTE_PATTERN.match(normalized):
        return IntentMatch(Intent.EXECUTE_LAST_SQL)
    if context.last_query_results:
        if SUMMARIZE_PATTERN.match(normalized):
            return IntentMatch(Intent.SUMMARIZE)
        if VISUALIZE_PATTERN.match(normalized):
            params: Dict[str, Any] = {"user_request": text.strip()}
            chart = CHART_TYPE_PATTERN.search(normalized)
            if chart:
                params["chart_type"] = chart.group(1).lower()
            return IntentMatch(Intent.VISUALIZE, params)

    if connected and detect_sql_statement(text):
        return IntentMatch(Intent.DIRECT_SQL, {"sql": text.strip().rstrip(";").strip()})

    if connected and context.tables and QUERY_INDICATORS.search(normalized):
        return IntentMatch(Intent.GENERATE_SQL, {"question": text.strip()})

    return IntentMatch(Intent.CHAT)
