from dataclasses import dataclass
from typing import Optional, Dict, Any, List
import json
import logging

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from datamind.agents.context import AgentContext, AgentContextManager
from datamind.agents.intents import Intent, IntentMatch, classify_intent
from datamind.models.schemas import (
    AgentContextSettings,
    FallbackMetadata,
    FunctionToolMetadata,
    LLMMetadata,
    normalize_agent_type,
)
from datamind.services.agent_configuration import AgentConfigurationService
from datamind.tools.base import FunctionToolRegistry
from datamind.utils.exceptions import LLMUnavailableError

logger = logging.getLogger(__name__)

@dataclass
class AgentResponse:
    content: str
    metadata: Dict[str, Any]
    visualization: Optional[Dict[str, Any]] = None

class AgentService:
    """Routes a chat message to a function tool or the LLM for one agent persona"""

    def __init__(
        self,
        contexts: AgentContextManager,
        registry: FunctionToolRegistry,
        configurations: AgentConfigurationService,
        llm,
    ):
        self.contexts = contexts
        self.registry = registry
        self.configurations = configurations
        self.llm = llm

    async def process_message(self, content: str, agent_type: str, session_id: str,
                              user_id: str) -> AgentResponse:
        agent_type = normalize_agent_type(agent_type)
        document = await self.configurations.get_configuration(user_id)
        enabled_tools = self.configurations.get_available_tools(document, agent_type)
        agent_settings = self.configurations.get_agent_settings(document, agent_type)

        async with self.contexts.session_lock(session_id):
            context = await self.contexts.get_context(session_id, user_id)
            await self.contexts.add_to_history(context, "user", content)

            match = classify_intent(content, context)
            runs_before = context.query_runs
            tool_name = self._routable_tool(match, enabled_tools, agent_settings)

            if tool_name is not None:
                logger.info(f"Session {session_id}: intent {match.intent.value} -> {tool_name}")
                params = dict(match.params)
                params.setdefault("user_request", content)
                text = await self.registry.execute(tool_name, context, params)
                await self.contexts.add_to_history(context, "function", text, function_name=tool_name)
                metadata = self._tool_metadata(
                    agent_type, tool_name, context, ran_query=context.query_runs > runs_before
                )
            else:
                text, metadata = await self._ask_llm(
                    content, agent_type, context, document, enabled_tools, agent_settings
                )

            await self.contexts.add_to_history(context, "assistant", text)
            visualization = self.contexts.pop_pending_visualization(context)

        return AgentResponse(content=text, metadata=metadata, visualization=visualization)

    @staticmethod
    def _routable_tool(match: IntentMatch, enabled_tools: List[str],
                       agent_settings: AgentContextSettings) -> Optional[str]:
        tool_name = match.tool_name
        if tool_name is None or tool_name not in enabled_tools:
            return None
        if match.intent == Intent.DIRECT_SQL and not agent_settings.auto_execute:
            return None
        return tool_name

    @staticmethod
    def _tool_metadata(agent_type: str, tool_names, context: AgentContext, ran_query: bool,
                       model: Optional[str] = None) -> Dict[str, Any]:
        """Query details are only reported when this turn actually ran a query"""
        names = [tool_names] if isinstance(tool_names, str) else list(tool_names)
        if model is None:
            metadata = FunctionToolMetadata(
                agent_type=agent_type,
                function_call=names[0],
                sql=context.last_query_sql if ran_query else None,
                row_count=len(context.last_query_results) if ran_query else None,
                execution_time_ms=context.last_query_execution_ms if ran_query else None,
            )
        else:
            metadata = LLMMetadata(
                agent_type=agent_type,
                model=model,
                tool_calls=names,
                sql=context.last_query_sql if ran_query else None,
                row_count=len(context.last_query_results) if ran_query else None,
            )
        return metadata.model_dump(mode="json", by_alias=True)

    def _build_messages(self, content: str, context: AgentContext, instructions: str,
                        agent_settings: AgentContextSettings) -> List[BaseMessage]:
        messages: List[BaseMessage] = [SystemMessage(content=instructions)]

        if agent_settings.retain_session and agent_settings.max_history:
            # The current user turn is the last history entry; it is appended below
            earlier = context.history[:-1][-agent_settings.max_history:]
            for entry in earlier:
                if entry.role == "user":
                    messages.append(HumanMessage(content=entry.content))
                elif entry.role == "assistant":
                    messages.append(AIMessage(content=entry.content))
                else:
                    messages.append(SystemMessage(
                        content=f"Result of {entry.function_name or 'a function'}:\n{entry.content}"
                    ))

        messages.append(SystemMessage(
            content=f"Current context: {self.contexts.get_context_summary(context)}"
        ))
        messages.append(HumanMessage(content=content))
        return messages

    async def _ask_llm(self, content: str, agent_type: str, context: AgentContext, document,
                       enabled_tools: List[str], agent_settings: AgentContextSettings):
        runs_before = context.query_runs
        instructions = self.configurations.get_agent_instructions(document, agent_type)
        messages = self._build_messages(content, context, instructions, agent_settings)

        try:
            reply = await self.llm.chat_with_tools(messages, self.registry.to_openai_tools(enabled_tools))
        except LLMUnavailableError as e:
            logger.warning(f"LLM unavailable for {agent_type} agent: {e.message}")
            metadata = FallbackMetadata(agent_type=agent_type, error=e.message)
            return (
                self.configurations.get_fallback_response(agent_type),
                metadata.model_dump(mode="json", by_alias=True),
            )

        tool_calls = [c for c in (getattr(reply, "tool_calls", None) or []) if c.get("name") in enabled_tools]
        if not tool_calls:
            text = reply.content if isinstance(reply.content, str) else json.dumps(reply.content)
            metadata = LLMMetadata(agent_type=agent_type, model=self.llm.model_name)
            return text or "I don't have anything to add.", metadata.model_dump(mode="json", by_alias=True)

        outputs = []
        names = []
        for call in tool_calls:
            name = call["name"]
            params = dict(call.get("args") or {})
            params.setdefault("user_request", content)
            logger.info(f"LLM selected tool {name} for session {context.session_id}")
            result = await self.registry.execute(name, context, params)
            await self.contexts.add_to_history(context, "function", result, function_name=name)
            outputs.append(result)
            names.append(name)

        return "\n\n".join(outputs), self._tool_metadata(
            agent_type, names, context, context.query_runs > runs_before, model=self.llm.model_name
        )
