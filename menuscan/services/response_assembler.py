"""
Maps internal results and errors to the public ``{success, data | message}`` contract.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from menuscan.core.exceptions import ErrorCode, MenuScanException
from menuscan.models.api_models import ApiResponse, DishImageData, ErrorResponse
from menuscan.models.menu import ExtractedMenu

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"


def assemble_menu(menu: ExtractedMenu) -> Dict[str, Any]:
    envelope = ApiResponse[ExtractedMenu](success=True, data=menu)
    return envelope.model_dump(mode="json", by_alias=True, exclude={"message"})


def assemble_dish_image(url: str) -> Dict[str, Any]:
    envelope = ApiResponse[DishImageData](success=True, data=DishImageData(image_url=url))
    return envelope.model_dump(mode="json", by_alias=True, exclude={"message"})


def assemble_error(exc: Exception, request_id: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
    """
    Status code and failure envelope for ``exc``.

    Only the typed message, code and details are exposed; anything else
    becomes a generic internal error.
    """
    if isinstance(exc, MenuScanException):
        status_code = exc.status_code
        body = ErrorResponse(
            message=exc.message,
            error_code=exc.error_code.value,
            request_id=request_id,
            details=exc.details or None,
        )
    else:
        status_code = 500
        body = ErrorResponse(
            message=INTERNAL_ERROR_MESSAGE,
            error_code=ErrorCode.INTERNAL_SERVER_ERROR.value,
            request_id=request_id,
        )
    return status_code, body.model_dump(mode="json", by_alias=True, exclude_none=True)
