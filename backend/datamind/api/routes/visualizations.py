from fastapi import APIRouter, Depends, status
from typing import List

from datamind.models.schemas import (
    PinnedVisualizationResponse,
    PinRequest,
    VisualizationResponse,
    VisualizationUpdate,
)
from datamind.services.container import ServiceContainer, get_container
from datamind.utils.exceptions import NotFoundError
from datamind.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)

@router.get("/visualizations/{user_id}", response_model=List[VisualizationResponse])
async def list_visualizations(user_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.storage.get_visualizations_by_user(user_id)

@router.patch("/visualizations/{visualization_id}", response_model=VisualizationResponse)
async def update_visualization(visualization_id: str, request: VisualizationUpdate,
                               container: ServiceContainer = Depends(get_container)):
    visualization = await container.storage.update_visualization(
        visualization_id, request.model_dump(exclude_unset=True)
    )
    if visualization is None:
        raise NotFoundError(f"Visualization {visualization_id} not found")
    return visualization

@router.delete("/visualizations/{visualization_id}")
async def delete_visualization(visualization_id: str, container: ServiceContainer = Depends(get_container)):
    if not await container.storage.delete_visualization(visualization_id):
        raise NotFoundError(f"Visualization {visualization_id} not found")
    return {"success": True}

@router.get("/pinned/{user_id}", response_model=List[PinnedVisualizationResponse])
async def list_pinned(user_id: str, container: ServiceContainer = Depends(get_container)):
    pinned = await container.storage.get_pinned_visualizations_by_user(user_id)
    return [
        PinnedVisualizationResponse(
            id=pin.id,
            user_id=pin.user_id,
            visualization_id=pin.visualization_id,
            pinned_at=pin.pinned_at,
            visualization=VisualizationResponse.model_validate(visualization),
        )
        for pin, visualization in pinned
    ]

@router.post("/pinned", status_code=status.HTTP_201_CREATED)
async def pin_visualization(request: PinRequest, container: ServiceContainer = Depends(get_container)):
    if await container.storage.get_visualization(request.visualization_id) is None:
        raise NotFoundError(f"Visualization {request.visualization_id} not found")
    pin = await container.storage.pin_visualization(request.user_id, request.visualization_id)
    logger.info(f"User {request.user_id} pinned {request.visualization_id}")
    return {"id": pin.id, "userId": pin.user_id, "visualizationId": pin.visualization_id, "pinnedAt": pin.pinned_at}

@router.delete("/pinned/{user_id}/{visualization_id}")
async def unpin_visualization(user_id: str, visualization_id: str,
                              container: ServiceContainer = Depends(get_container)):
    removed = await container.storage.unpin_visualization(user_id, visualization_id)
    return {"success": removed}

@router.get("/published", response_model=List[VisualizationResponse])
async def list_published(container: ServiceContainer = Depends(get_container)):
    return await container.storage.get_published_visualizations()
