"""
Dish image endpoint.

POST /generate-dish-image returns the cached image URL for a dish, or
generates it. Concurrent requests for the same dish share one generation.
"""

from fastapi import APIRouter, Depends
import logging

from menuscan.core.dependencies import get_dish_image_service, get_request_id
from menuscan.models.api_models import DishImageRequest, ErrorResponse
from menuscan.services.dish_image_service import DishImageService
from menuscan.services.response_assembler import assemble_dish_image

logger = logging.getLogger(__name__)

router = APIRouter(tags=["dish-images"])


@router.post(
    "/generate-dish-image",
    responses={
        400: {"model": ErrorResponse, "description": "Dish name missing"},
        502: {"model": ErrorResponse, "description": "Image generation failed"},
    }
)
async def generate_dish_image(
    body: DishImageRequest,
    service: DishImageService = Depends(get_dish_image_service),
    request_id: str = Depends(get_request_id)
):
    logger.info(
        f"Dish image request {request_id}",
        extra={'request_id': request_id, 'dish_name': body.dish_name}
    )
    url = await service.get_image_url(body.dish_name, body.description, request_id=request_id)
    return assemble_dish_image(url)
