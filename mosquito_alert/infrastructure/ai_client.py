"""
Breeding-site classification client.

HTTP client for the Roboflow workflow that decides whether a photo shows a
mosquito breeding site. The service is a black box: it gets an image and
returns detections; this module turns them into a Classification.
"""

import base64
import httpx
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.config import settings
from ..domain.errors import GatewayFailure

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What a classifier outage means for the submission."""
    REJECT = "reject"            # treat as not a breeding site
    PROVISIONAL = "provisional"  # accept, pending manual review


@dataclass(frozen=True)
class ClassifierConfig:
    workflow_url: str
    api_key: str
    timeout: float = 35.0


@dataclass
class Classification:
    """Result of classifying one image."""
    is_valid: bool
    confidence: int  # 0-100
    verdict: str  # VALID, INVALID or ERROR
    reasoning: List[str]
    detections: List[Dict[str, Any]] = field(default_factory=list)
    fallback: bool = False
    error: Optional[str] = None


def _extract_predictions(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Find the prediction list in a workflow response."""
    outputs = data.get("outputs") or []
    if not outputs or not isinstance(outputs[0], dict):
        return []

    pred_data = outputs[0].get("predictions")
    if not isinstance(pred_data, dict):
        return []

    # Detection / multi-label workflows
    if isinstance(pred_data.get("predictions"), list):
        return pred_data["predictions"]

    # Single-label classification
    if pred_data.get("top"):
        return [{"class": pred_data["top"], "confidence": pred_data.get("confidence", 0)}]

    return []


def parse_workflow_response(data: Dict[str, Any]) -> Classification:
    """
    Convert a Roboflow workflow response into a Classification.

    Detections labelled "not breeding ..." are discarded; the image is valid
    when at least one detection remains.
    """
    detections = []
    for pred in _extract_predictions(data):
        label = pred.get("class") or pred.get("predicted_class") or pred.get("label")
        if not label:
            continue
        raw_confidence = pred.get("confidence") or pred.get("score") or 0
        detections.append({
            "class": label,
            "confidence": round(float(raw_confidence) * 100),
            "bounding_box": {
                "x": pred["x"],
                "y": pred.get("y"),
                "width": pred.get("width"),
                "height": pred.get("height"),
            } if pred.get("x") is not None else None,
        })

    valid_detections = [d for d in detections if "not breeding" not in d["class"].lower()]
    has_breeding_site = len(valid_detections) > 0
    max_confidence = max((d["confidence"] for d in detections), default=0)

    reasoning = []
    if has_breeding_site:
        reasoning.append(f"Detected {len(valid_detections)} potential breeding site(s)")
        for idx, det in enumerate(valid_detections, start=1):
            reasoning.append(f"{idx}. {det['class']} ({det['confidence']}% confidence)")
        reasoning.append("Image validated as mosquito breeding site")
    else:
        reasoning.append("No mosquito breeding sites detected in image")
        if detections:
            reasoning.append(
                f"AI classified as: \"{detections[0]['class']}\" ({detections[0]['confidence']}% confidence)"
            )
        reasoning.append("Please upload a clear photo of a potential breeding site")
        reasoning.append("Examples: standing water, containers, tires, gutters")

    return Classification(
        is_valid=has_breeding_site,
        confidence=max(0, min(max_confidence, 100)),
        verdict="VALID" if has_breeding_site else "INVALID",
        reasoning=reasoning,
        detections=valid_detections,
    )


class RoboflowClassifier:
    """
    Client for the breeding-site classification workflow.

    Every failure mode (no key, transport error, timeout, non-2xx, bad JSON)
    surfaces as GatewayFailure; callers decide what a failure means.
    """

    def __init__(self, config: ClassifierConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize the classifier client.

        Args:
            config: Workflow URL, API key and timeout
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.workflow_url)

    async def classify(self, image_bytes: bytes) -> Classification:
        """
        Classify an image.

        Args:
            image_bytes: Raw image content

        Returns:
            Classification parsed from the workflow output

        Raises:
            GatewayFailure: if the service cannot produce a verdict
        """
        if not image_bytes:
            raise GatewayFailure("No image supplied for classification")

        if not self.is_configured:
            raise GatewayFailure("Roboflow API key not configured")

        payload = {
            "api_key": self.config.api_key,
            "inputs": {
                "image": {
                    "type": "base64",
                    "value": base64.b64encode(image_bytes).decode("ascii"),
                }
            },
        }

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.config.timeout) as client:
                response = await client.post(self.config.workflow_url, json=payload)
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException:
            logger.error(f"Classifier request timed out after {self.config.timeout}s")
            raise GatewayFailure(f"Classifier timed out after {self.config.timeout:.0f} seconds")
        except httpx.HTTPStatusError as e:
            logger.error(f"Classifier returned error {e.response.status_code}")
            raise GatewayFailure(f"Classifier returned HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"Classifier request failed: {e}")
            raise GatewayFailure(f"Classifier unreachable: {e}")
        except ValueError as e:
            logger.error(f"Classifier returned malformed JSON: {e}")
            raise GatewayFailure("Classifier returned a malformed response")

        if not isinstance(data, dict):
            raise GatewayFailure("Classifier returned a malformed response")

        try:
            result = parse_workflow_response(data)
        except (AttributeError, KeyError, TypeError, ValueError, OverflowError) as e:
            logger.error(f"Classifier returned malformed predictions: {e}")
            raise GatewayFailure("Classifier returned a malformed response")

        logger.info(f"Classification result: {result.verdict} ({result.confidence}% confidence)")
        return result


def resolve_failure(error: GatewayFailure, policy: FailurePolicy) -> Classification:
    """Turn a classifier failure into a verdict according to the deployment's policy."""
    if policy == FailurePolicy.PROVISIONAL:
        reasoning = [
            "AI validation unavailable",
            str(error),
            "Report accepted provisionally and queued for manual review",
        ]
        is_valid = True
    else:
        reasoning = [
            "AI validation failed",
            str(error),
            "Please try again or contact support",
        ]
        is_valid = False

    return Classification(
        is_valid=is_valid,
        confidence=0,
        verdict="ERROR",
        reasoning=reasoning,
        fallback=True,
        error=str(error),
    )


async def classify_with_policy(
    classifier: RoboflowClassifier,
    image_bytes: bytes,
    policy: FailurePolicy,
) -> Classification:
    """Classify an image; never raises GatewayFailure."""
    try:
        return await classifier.classify(image_bytes)
    except GatewayFailure as e:
        logger.warning(f"Using {policy.value} fallback after classifier failure: {e}")
        return resolve_failure(e, policy)


# Global instance (built lazily from settings)
_classifier: Optional[RoboflowClassifier] = None


def get_classifier() -> RoboflowClassifier:
    """Get or create the classifier configured from settings."""
    global _classifier
    if _classifier is None:
        _classifier = RoboflowClassifier(ClassifierConfig(
            workflow_url=settings.ROBOFLOW_WORKFLOW_URL,
            api_key=settings.ROBOFLOW_API_KEY,
            timeout=settings.AI_TIMEOUT_SECONDS,
        ))
    return _classifier


def get_failure_policy() -> FailurePolicy:
    return FailurePolicy(settings.AI_FAILURE_POLICY.lower())
