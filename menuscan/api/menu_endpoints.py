"""
Menu endpoints.

- POST /scan-menu: photograph in, structured menu out
- POST /translate-menu: structured menu in, translated copy out
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import Optional
import logging

from menuscan.core.dependencies import (
    get_request_id,
    get_scan_pipeline,
    get_translation_orchestrator,
)
from menuscan.core.processing_pipeline import ScanPipeline
from menuscan.models.api_models import ErrorResponse, TranslateMenuRequest
from menuscan.services.response_assembler import assemble_menu
from menuscan.services.translation_service import TranslationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["menu"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid upload or request"},
    413: {"model": ErrorResponse, "description": "Image too large"},
    422: {"model": ErrorResponse, "description": "Menu could not be read or translated"},
    502: {"model": ErrorResponse, "description": "Model service rejected the request"},
    503: {"model": ErrorResponse, "description": "Model service temporarily unavailable"},
}


async def _read_upload(upload: Optional[UploadFile], max_bytes: int) -> Optional[bytes]:
    """Read at most one byte past the limit so oversized uploads are detected without reading them whole."""
    if upload is None:
        return None
    try:
        return await upload.read(max_bytes + 1)
    finally:
        await upload.close()


@router.post("/scan-menu", responses=_ERROR_RESPONSES)
async def scan_menu(
    image: Optional[UploadFile] = File(None, description="Menu photo"),
    menu_image: Optional[UploadFile] = File(None, alias="menuImage", description="Menu photo (alternate field name)"),
    language: Optional[str] = Form(None, description="Output language, English when omitted"),
    pipeline: ScanPipeline = Depends(get_scan_pipeline),
    request_id: str = Depends(get_request_id)
):
    """
    Extract a structured menu from a photograph.

    The image is validated, sent to the multimodal model, and the reply is
    parsed (and repaired if needed) into the canonical menu shape.
    """
    upload = image or menu_image
    logger.info(
        f"Scan menu request {request_id}",
        extra={
            'request_id': request_id,
            'image_filename': upload.filename if upload else None,
            'image_content_type': upload.content_type if upload else None,
            'language': language,
        }
    )

    max_bytes = pipeline.intake.config.max_image_bytes
    image_bytes = await _read_upload(upload, max_bytes)
    return await pipeline.process(
        image_bytes,
        upload.content_type if upload else None,
        language,
        request_id=request_id,
    )


@router.post("/translate-menu", responses=_ERROR_RESPONSES)
async def translate_menu(
    body: TranslateMenuRequest,
    orchestrator: TranslationOrchestrator = Depends(get_translation_orchestrator),
    request_id: str = Depends(get_request_id)
):
    """
    Translate an extracted menu.

    Item ids, prices and the category/item structure are unchanged in the
    result; a reply that alters them is rejected as a translation failure.
    """
    translated = await orchestrator.translate(body.menu, body.language, request_id=request_id)
    return assemble_menu(translated)
