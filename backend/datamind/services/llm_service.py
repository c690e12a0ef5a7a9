from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Literal
import logging

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from datamind.config import settings
from datamind.utils.exceptions import LLMUnavailableError

logger = logging.getLogger(__name__)

Provider = Literal["openai", "azure"]

@dataclass(frozen=True)
class ModelConfig:
    """Configuration for a single chat model"""
    id: str
    display_name: str
    provider: Provider
    deployment: Optional[str] = None
    api_version: Optional[str] = None

class LLMService:
    """Chat-completion access through LangChain with function calling"""

    def __init__(self):
        self.models = self._build_model_registry()
        if not self.models:
            logger.warning("No LLM models configured")
        self.default_model_id = next(iter(self.models), None)
        self._llm_cache: Dict[str, Any] = {}

        self.default_system_prompt = (
            "You are a data analyst assistant working against a Snowflake warehouse. "
            "Answer clearly and format results with Markdown."
        )

    def _build_model_registry(self) -> Dict[str, ModelConfig]:
        registry: Dict[str, ModelConfig] = {}

        if settings.has_azure_openai_config:
            registry[settings.AZURE_OPENAI_DEPLOYMENT_NAME] = ModelConfig(
                id=settings.AZURE_OPENAI_DEPLOYMENT_NAME,
                display_name=f"{settings.AZURE_OPENAI_DEPLOYMENT_NAME} (Azure)",
                provider="azure",
                deployment=settings.AZURE_OPENAI_DEPLOYMENT_NAME,
                api_version=settings.AZURE_OPENAI_API_VERSION,
            )

        if settings.OPENAI_API_KEY:
            registry[settings.OPENAI_MODEL] = ModelConfig(
                id=settings.OPENAI_MODEL,
                display_name=settings.OPENAI_MODEL,
                provider="openai",
            )

        return registry

    @property
    def is_configured(self) -> bool:
        return bool(self.models)

    def resolve_model_id(self, preferred_id: Optional[str]) -> Optional[str]:
        if preferred_id and preferred_id in self.models:
            return preferred_id
        return self.default_model_id

    def get_available_models(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": model_id,
                "label": cfg.display_name,
                "provider": cfg.provider,
                "default": model_id == self.default_model_id,
            }
            for model_id, cfg in self.models.items()
        ]

    def get_llm(self, model_id: Optional[str] = None):
        """Return (and cache) a LangChain chat model"""
        resolved_id = self.resolve_model_id(model_id)
        if not resolved_id:
            raise LLMUnavailableError("No OpenAI model is configured")

        if resolved_id in self._llm_cache:
            return self._llm_cache[resolved_id]

        cfg = self.models[resolved_id]
        if cfg.provider == "azure":
            llm = AzureChatOpenAI(
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                azure_deployment=cfg.deployment,
                api_version=cfg.api_version,
                api_key=settings.AZURE_OPENAI_API_KEY,
                temperature=settings.OPENAI_TEMPERATURE,
            )
        else:
            llm = ChatOpenAI(
                model=cfg.id,
                api_key=settings.OPENAI_API_KEY,
                temperature=settings.OPENAI_TEMPERATURE,
            )
        self._llm_cache[resolved_id] = llm
        return llm

    async def generate_response(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model_id: Optional[str] = None
    ) -> str:
        """Single-turn completion"""
        llm = self.get_llm(model_id)
        messages = [
            SystemMessage(content=system_prompt or self.default_system_prompt),
            HumanMessage(content=prompt)
        ]
        try:
            response = await llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"Error generating response: {str(e)}")
            raise LLMUnavailableError(f"LLM request failed: {e}")
        return response.content or ""

    async def chat_with_tools(
        self,
        messages: List[BaseMessage],
        tools: List[Dict[str, Any]],
        model_id: Optional[str] = None
    ) -> AIMessage:
        """Multi-turn completion; the model may answer with tool calls"""
        llm = self.get_llm(model_id)
        runnable = llm.bind_tools(tools, tool_choice="auto") if tools else llm
        try:
            return await runnable.ainvoke(messages)
        except Exception as e:
            logger.error(f"Error in tool-calling completion: {str(e)}")
            raise LLMUnavailableError(f"LLM request failed: {e}")

    @property
    def model_name(self) -> Optional[str]:
        return self.default_model_id
