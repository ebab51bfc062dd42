"""
Input validation for new reports.

Everything a client sends is checked here before an image is uploaded or a
row is written, so a rejected submission never leaves state behind.
"""
import json
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Union

from ..errors import ValidationError
from ..models import BreedingType, Severity

logger = logging.getLogger(__name__)


@dataclass
class ReportDraft:
    """A validated, not yet persisted report."""
    breeding_type: str
    severity: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    description: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        return asdict(self)


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_location(location: Union[str, Dict[str, Any], None]) -> Optional[Dict[str, Any]]:
    """
    Accept a location as a dict or a JSON string; anything unparseable counts as absent.
    """
    if not location:
        return None
    if isinstance(location, dict):
        return location
    try:
        parsed = json.loads(location)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable location payload: {location!r}")
        return None
    return parsed if isinstance(parsed, dict) else None


def build_draft(
    breeding_type: Optional[str],
    severity: Optional[str],
    location: Union[str, Dict[str, Any], None] = None,
    location_text: Optional[str] = None,
    description: Optional[str] = None,
) -> ReportDraft:
    """
    Validate raw submission fields and return a ReportDraft.

    Raises:
        ValidationError: with the offending field name
    """
    coords = parse_location(location)
    address = _clean_text(location_text)
    if address is None and coords:
        address = _clean_text(coords.get("address"))

    latitude = longitude = None
    if coords and coords.get("lat") is not None and coords.get("lng") is not None:
        try:
            latitude = float(coords["lat"])
            longitude = float(coords["lng"])
        except (TypeError, ValueError):
            raise ValidationError(
                "Invalid coordinates. Ensure lat is -90..90 and lng is -180..180",
                field="location",
            )
        # NaN fails both comparisons, so check the accepted range positively
        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            raise ValidationError(
                "Invalid coordinates. Ensure lat is -90..90 and lng is -180..180",
                field="location",
            )

    if latitude is None and address is None:
        raise ValidationError(
            "Please provide a location: either map coordinates or a textual description (locationText)",
            field="location",
        )

    if not breeding_type or not severity:
        raise ValidationError("breedingType and severity are required", field="breedingType" if not breeding_type else "severity")

    allowed_types = [t.value for t in BreedingType]
    if breeding_type not in allowed_types:
        raise ValidationError(
            f"breedingType must be one of: {', '.join(allowed_types)}", field="breedingType"
        )

    allowed_severities = [s.value for s in Severity]
    if severity not in allowed_severities:
        raise ValidationError(
            f"severity must be one of: {', '.join(allowed_severities)}", field="severity"
        )

    return ReportDraft(
        breeding_type=breeding_type,
        severity=severity,
        latitude=latitude,
        longitude=longitude,
        address=address,
        description=_clean_text(description),
    )
