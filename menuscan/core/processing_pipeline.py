"""
Scan pipeline.

Runs the synchronous menu scan path as sequential awaits:

1. Image intake
2. Prompt construction
3. Extraction call
4. Parsing and repair
5. Response assembly

Each stage fails with a typed exception that ends the pipeline; the error
handlers turn it into a failure response.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict, Optional

from menuscan.core.exceptions import MenuScanException
from menuscan.services.image_intake import ImageIntake
from menuscan.services.menu_parser import MenuParser
from menuscan.services.model_client import ExtractionClient
from menuscan.services.prompt_builder import PromptBuilder
from menuscan.services.response_assembler import assemble_menu

logger = logging.getLogger(__name__)


class ProcessingStage(str, Enum):
    """Stages of the scan path, for logging"""
    IMAGE_INTAKE = "image_intake"
    PROMPT_CONSTRUCTION = "prompt_construction"
    EXTRACTION = "extraction"
    PARSING = "parsing"
    RESPONSE_ASSEMBLY = "response_assembly"
    COMPLETED = "completed"


class ScanPipeline:
    """
    Turns an uploaded menu photo into the public menu response.
    """

    def __init__(
        self,
        intake: ImageIntake,
        prompt_builder: PromptBuilder,
        extraction_client: ExtractionClient,
        parser: MenuParser
    ):
        self.intake = intake
        self.prompt_builder = prompt_builder
        self.extraction_client = extraction_client
        self.parser = parser
        self.logger = logging.getLogger(__name__)

    async def process(
        self,
        image_bytes: Optional[bytes],
        content_type: Optional[str],
        language: Optional[str],
        request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Run the scan path for one upload.

        Args:
            image_bytes: Uploaded file content
            content_type: Declared MIME type of the upload
            language: Requested output language (English when blank)
            request_id: Request identifier for logging

        Returns:
            ``{"success": True, "data": <menu>}``
        """
        start_time = time.perf_counter()
        stage = ProcessingStage.IMAGE_INTAKE

        try:
            payload = self.intake.process(image_bytes, content_type, language, request_id)

            stage = ProcessingStage.PROMPT_CONSTRUCTION
            request = self.prompt_builder.build_extraction_request(payload)

            stage = ProcessingStage.EXTRACTION
            raw = await self.extraction_client.extract(request, request_id)

            stage = ProcessingStage.PARSING
            menu = self.parser.parse(raw, request_id=request_id)

            stage = ProcessingStage.RESPONSE_ASSEMBLY
            response = assemble_menu(menu)

        except MenuScanException as e:
            self.logger.warning(
                f"Scan failed at stage {stage.value}: {e.error_code.value}",
                extra={'request_id': request_id, 'stage': stage.value,
                       'error_code': e.error_code.value}
            )
            raise

        processing_time_ms = int((time.perf_counter() - start_time) * 1000)
        self.logger.info(
            f"Menu scan completed ({processing_time_ms}ms)",
            extra={
                'request_id': request_id,
                'stage': ProcessingStage.COMPLETED.value,
                'processing_time_ms': processing_time_ms,
                'categories': len(menu.categories),
                'items': menu.total_items,
                'target_language': payload.target_language.value,
            }
        )
        return response
