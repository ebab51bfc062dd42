"""
Pre-submission image check.

Lets the client ask whether a photo shows a breeding site before filling in
the report form. Classifier outages are resolved by the configured failure
policy, so this endpoint never answers with a raw 5xx for them.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, UploadFile, File, Depends

from ..core.config import settings
from ..domain.models import ClassificationResponse
from ..infrastructure.ai_client import FailurePolicy, RoboflowClassifier, classify_with_policy
from ..infrastructure.storage import validate_image
from .deps import get_classifier_dep, get_failure_policy_dep

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/validate-image", response_model=ClassificationResponse)
async def validate_breeding_site_image(
    image: UploadFile = File(..., description="Image file to classify (JPEG, PNG, GIF, WEBP)"),
    classifier: RoboflowClassifier = Depends(get_classifier_dep),
    failure_policy: FailurePolicy = Depends(get_failure_policy_dep),
):
    """
    Classify an uploaded photo as a mosquito breeding site or not.

    Returns the verdict, a 0-100 confidence, human-readable reasoning and the
    detections that support it. `fallback` is true when the classifier was
    unavailable and the verdict comes from the failure policy.
    """
    content = await image.read()
    validate_image(content, image.content_type, settings.MAX_UPLOAD_BYTES)

    logger.info(f"Validating image {image.filename}")
    result = await classify_with_policy(classifier, content, failure_policy)

    return ClassificationResponse(
        is_valid=result.is_valid,
        confidence=result.confidence,
        verdict=result.verdict,
        reasoning=result.reasoning,
        detections=result.detections,
        fallback=result.fallback,
        timestamp=datetime.utcnow(),
    )
