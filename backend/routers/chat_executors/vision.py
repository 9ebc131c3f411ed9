"""
Nyx Chat Executors - Vision

Part identification from the image attached to the current message. The
image never comes from the model's arguments; it is passed in as context.
"""

import logging
from typing import Any, Dict, Optional

from errors import ErrorCode, ValidationError, handle_async_tool_errors, success_response

logger = logging.getLogger(__name__)


@handle_async_tool_errors("analyze_image")
async def execute_analyze_image(image_data: Optional[str] = None, vision: Any = None) -> Dict[str, Any]:
    if not image_data:
        raise ValidationError("No image was attached to this message.", parameter="image_data")
    if not image_data.startswith("data:image/"):
        raise ValidationError(
            "Attached image is not a data URL",
            parameter="image_data",
            expected="data:image/<type>;base64,...",
            code=ErrorCode.VALIDATION_INVALID_FORMAT,
        )
    if vision is None:
        from services.llm_client import VisionClient

        vision = VisionClient()

    analysis = await vision.analyze_image(image_data)
    logger.info(f"Image analyzed: {analysis.get('part_type')}")
    return success_response("Image analyzed.", analysis=analysis)
