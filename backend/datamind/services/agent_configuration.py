from datetime import datetime, timezone
from typing import Optional, List
import logging

from pydantic import ValidationError

from datamind.models.schemas import (
    AgentConfigurationDocument,
    AgentContextSettings,
    AgentPrompt,
    AgentSettings,
    ToolSetting,
    normalize_agent_type,
)
from datamind.tools import ALL_TOOLS

logger = logging.getLogger(__name__)

PERSONA_INSTRUCTIONS = {
    "query": (
        "You are the Query Agent of DataMind, a Snowflake analytics assistant. "
        "Help the user connect, explore databases, schemas and tables, write SQL "
        "and explain results. Use the available functions to act on the warehouse "
        "instead of guessing about its contents."
    ),
    "ontology": (
        "You are the Ontology Agent of DataMind. You help users browse stages, load "
        "YAML semantic models and explain the business concepts, tables, dimensions "
        "and measures they define."
    ),
    "dashboards": (
        "You are the Dashboards Agent of DataMind. You turn query results into clear "
        "charts, suggest suitable visualizations and explain what they show."
    ),
    "general": (
        "You are the General Assistant of DataMind. You answer questions about data "
        "analysis, SQL and Snowflake, and point users to the specialised agents when "
        "they need to query or chart their data."
    ),
}

FALLBACK_RESPONSES = {
    "query": (
        "I can't reach the language model right now, but I can still run commands. "
        "Try `connect`, `show databases`, `use database <name>`, `show tables`, "
        "or paste a SQL statement to run it directly."
    ),
    "ontology": (
        "I can't reach the language model right now. You can still browse semantic "
        "models with `show stages`, `use stage <name>`, `show yaml files` and "
        "`load yaml <file>`."
    ),
    "dashboards": (
        "I can't reach the language model right now. Run a query first, then say "
        "`create a bar chart` or `suggest charts` to visualize the results."
    ),
    "general": (
        "I can't reach the language model right now. Please try again in a moment, "
        "or switch to the Query Agent to work with your data directly."
    ),
}

AGENT_TOOLSETS = {
    "query": [tool.name for tool in ALL_TOOLS],
    "ontology": [
        "connect_to_snowflake", "get_current_context", "get_databases", "select_database",
        "get_schemas", "select_schema", "get_tables", "describe_table", "get_stages",
        "select_stage", "get_yaml_files", "load_yaml_file", "get_yaml_content",
    ],
    "dashboards": [
        "connect_to_snowflake", "get_current_context", "get_tables", "describe_table",
        "generate_sql", "execute_sql", "generate_summary", "visualize_data",
        "get_visualization_suggestions",
    ],
    "general": ["get_current_context", "get_databases", "get_tables", "describe_table"],
}

AGENT_NAMES = {
    "query": ("Query Agent", "Explores the warehouse and answers questions with SQL"),
    "ontology": ("Ontology Agent", "Works with YAML semantic models stored in stages"),
    "dashboards": ("Dashboards Agent", "Builds charts and dashboards from query results"),
    "general": ("General Assistant", "General data and analytics help"),
}

def default_configuration() -> AgentConfigurationDocument:
    tools = [
        ToolSetting(name=t.name, description=t.description, category=t.category, enabled=True)
        for t in ALL_TOOLS
    ]
    prompts = [
        AgentPrompt(id=f"{agent_type}-system", name=f"{AGENT_NAMES[agent_type][0]} instructions",
                    type="system", content=text, enabled=True)
        for agent_type, text in PERSONA_INSTRUCTIONS.items()
    ]
    agents = [
        AgentSettings(
            id=f"{agent_type}-agent",
            name=name,
            type=agent_type,
            description=description,
            enabled=True,
            tools=list(AGENT_TOOLSETS[agent_type]),
            prompts=[f"{agent_type}-system"],
            context=AgentContextSettings(),
        )
        for agent_type, (name, description) in AGENT_NAMES.items()
    ]
    return AgentConfigurationDocument(tools=tools, prompts=prompts, agents=agents)

class AgentConfigurationService:
    """Loads and saves per-user agent configuration documents"""

    def __init__(self, storage):
        self.storage = storage

    async def get_configuration(self, user_id: str) -> AgentConfigurationDocument:
        record = await self.storage.get_agent_configuration(user_id)
        if record is None:
            return default_configuration()
        try:
            document = AgentConfigurationDocument.model_validate(record.config_data)
        except ValidationError as e:
            logger.warning(f"Stored agent configuration for {user_id} is invalid, using defaults: {e}")
            return default_configuration()
        if record.updated_at and document.last_saved is None:
            document.last_saved = record.updated_at
        return document

    async def save_configuration(self, user_id: str,
                                 document: AgentConfigurationDocument) -> AgentConfigurationDocument:
        document = document.model_copy(update={"last_saved": datetime.now(timezone.utc)})
        await self.storage.save_agent_configuration(user_id, document.model_dump(mode="json", by_alias=True))
        logger.info(f"Saved agent configuration for {user_id}")
        return document

    @staticmethod
    def get_available_tools(document: AgentConfigurationDocument, agent_type: str) -> List[str]:
        agent = document.get_agent(agent_type)
        if agent is None or not agent.enabled:
            return []
        available = []
        for name in agent.tools:
            setting = document.get_tool(name)
            if setting is None or setting.enabled:
                available.append(name)
        return available

    @staticmethod
    def get_agent_settings(document: AgentConfigurationDocument, agent_type: str) -> AgentContextSettings:
        agent = document.get_agent(agent_type)
        return agent.context if agent else AgentContextSettings()

    @staticmethod
    def get_agent_instructions(document: AgentConfigurationDocument, agent_type: str) -> str:
        agent_type = normalize_agent_type(agent_type)
        agent = document.get_agent(agent_type)
        if agent is not None:
            for prompt_id in agent.prompts:
                prompt = document.get_prompt(prompt_id)
                if prompt is not None and prompt.enabled and prompt.content.strip():
                    return prompt.content
        return PERSONA_INSTRUCTIONS.get(agent_type, PERSONA_INSTRUCTIONS["general"])

    @staticmethod
    def get_fallback_response(agent_type: Optional[str]) -> str:
        return FALLBACK_RESPONSES.get(normalize_agent_type(agent_type), FALLBACK_RESPONSES["general"])
