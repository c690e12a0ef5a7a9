from fastapi import APIRouter, Depends

from datamind.models.schemas import AgentConfigurationDocument
from datamind.services.container import ServiceContainer, get_container
from datamind.utils.exceptions import NotFoundError
from datamind.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)

@router.get("/{user_id}", response_model=AgentConfigurationDocument)
async def get_agent_configuration(user_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.configurations.get_configuration(user_id)

@router.put("/{user_id}", response_model=AgentConfigurationDocument)
async def save_agent_configuration(user_id: str, document: AgentConfigurationDocument,
                                   container: ServiceContainer = Depends(get_container)):
    if await container.storage.get_user(user_id) is None:
        raise NotFoundError(f"User {user_id} not found")
    return await container.configurations.save_configuration(user_id, document)
