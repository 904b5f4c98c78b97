"""
Pattern extraction of vitals and report metadata from free text.

Best-effort by nature: any field that does not match, or matches a value outside
the physiological ranges on ``Vitals``, is simply left out. The result may
contain no vitals at all.
"""

import re
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from telemetry.domain.models import BloodPressure, DocumentMetadata, Vitals

logger = structlog.get_logger(__name__)

_NUMBER = r"(\d+(?:\.\d+)?)"

VITAL_PATTERNS: dict[str, re.Pattern[str]] = {
    "heart_rate": re.compile(rf"heart\s*rate[:\s]+{_NUMBER}", re.IGNORECASE),
    "oxygen_level": re.compile(rf"(?:spo2|oxygen)[:\s]+{_NUMBER}", re.IGNORECASE),
    "glucose_level": re.compile(rf"glucose[:\s]+{_NUMBER}", re.IGNORECASE),
    "temperature": re.compile(rf"temp(?:erature)?[:\s]+{_NUMBER}", re.IGNORECASE),
}

BLOOD_PRESSURE_PATTERN = re.compile(r"(\d{2,3})\s*/\s*(\d{2,3})")

METADATA_PATTERNS: dict[str, re.Pattern[str]] = {
    "report_name": re.compile(r"report(?:\s+name)?[:\s]+([^\n]+)", re.IGNORECASE),
    "hospital_name": re.compile(r"hospital[:\s]+([^\n]+)", re.IGNORECASE),
    "doctor_name": re.compile(r"(?:dr\.?|doctor)[:\s]+([^\n]+)", re.IGNORECASE),
}


def extract_vitals(text: str) -> Vitals:
    """Pull whatever vitals the text mentions; out-of-range values are dropped."""
    candidates: dict[str, Any] = {}
    for field, pattern in VITAL_PATTERNS.items():
        match = pattern.search(text)
        if match:
            candidates[field] = float(match.group(1))

    bp_match = BLOOD_PRESSURE_PATTERN.search(text)
    if bp_match:
        candidates["blood_pressure"] = {
            "systolic": int(bp_match.group(1)),
            "diastolic": int(bp_match.group(2)),
        }

    accepted: dict[str, Any] = {}
    for field, value in candidates.items():
        try:
            if field == "blood_pressure":
                accepted[field] = BloodPressure(**value)
            else:
                Vitals(**{field: value})
                accepted[field] = value
        except PydanticValidationError:
            logger.warning("extracted_vital_out_of_range", field=field, value=value)

    return Vitals(**accepted)


def extract_metadata(text: str) -> DocumentMetadata:
    found: dict[str, str] = {}
    for field, pattern in METADATA_PATTERNS.items():
        match = pattern.search(text)
        if match and match.group(1).strip():
            found[field] = match.group(1).strip()
    return DocumentMetadata(**found)
