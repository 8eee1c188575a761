"""
Candidate profile updates.

Applies structured data from generated replies to the CandidateProfile and,
for the degraded path, extracts what it can from the raw input with simple
heuristics. Both report the names of the fields that changed so they can be
mirrored to the persistence store.
"""

import re
from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from src.domain.models.candidate import (
    CandidateProfile,
    CareerObjectivesReport,
    JobExperienceDetail,
    JobExperienceReport,
    LinkedInData,
)
from src.domain.models.step import StepDefinition

log = structlog.get_logger(__name__)

HEURISTIC_CONFIDENCE = 60

_NAME_RE = re.compile(r"^[a-zA-Z\s'-]+$")
_EMAIL_RE = re.compile(r"[\w.+-]+@[\w.-]+\.\w+")
_LINKEDIN_RE = re.compile(r"linkedin\.com/in/[\w-]+|linkedin\.com/[\w-]+", re.IGNORECASE)
_USERNAME_RE = re.compile(r"^[a-zA-Z0-9-]+$")


def _text(data: Dict[str, Any], key: str) -> str:
    """Stripped string value of ``key``; anything that is not a string is ignored."""
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def normalize_linkedin(value: str) -> str:
    """Canonical 'linkedin.com/in/<user>' form of a URL or bare username."""
    clean = value.strip().rstrip("/")
    clean = re.sub(r"^https?://", "", clean, flags=re.IGNORECASE)
    clean = re.sub(r"^www\.", "", clean, flags=re.IGNORECASE)
    if not clean.lower().startswith("linkedin.com"):
        clean = f"linkedin.com/in/{clean}"
    return clean


class ProfileService:
    """Writes collected data into a CandidateProfile."""

    def __init__(self, confidence_threshold: int = 60):
        self.confidence_threshold = confidence_threshold

    def apply_extracted_data(
        self,
        profile: CandidateProfile,
        step: StepDefinition,
        data: Optional[Dict[str, Any]],
        confidence: int,
        loop_index: Optional[int] = None,
    ) -> List[str]:
        """
        Apply a reply's structured data for the given step.

        Args:
            profile: Profile to update in place
            step: Step the reply was generated for
            data: ``data`` object of the reply (camelCase keys)
            confidence: Reply confidence (0-100)
            loop_index: Position of the current job (loop step only)

        Returns:
            Names of the profile fields that changed
        """
        if not data or confidence < self.confidence_threshold:
            log.debug(
                "profile_update_skipped",
                step=step.name,
                has_data=bool(data),
                confidence=confidence,
            )
            return []

        handler = getattr(self, f"_apply_{step.name.replace('-', '_')}", None)
        if handler is None:
            return []

        try:
            changed = handler(profile, data, loop_index)
        except (PydanticValidationError, TypeError, AttributeError) as e:
            log.warning(
                "profile_data_invalid",
                step=step.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        if changed:
            log.info("profile_updated", step=step.name, fields=changed)
        return changed

    # ==================== per-step handlers ====================

    def _apply_welcome(self, profile, data, loop_index) -> List[str]:
        first = _text(data, "firstName")
        last = _text(data, "lastName")
        full = _text(data, "fullName") or f"{first} {last}".strip()
        if not full:
            return []
        profile.personal_info.name = full
        return ["name"]

    def _apply_email(self, profile, data, loop_index) -> List[str]:
        email = _text(data, "email")
        if not email or profile.personal_info.email:
            return []
        profile.personal_info.email = email
        return ["email"]

    def _apply_linkedin(self, profile, data, loop_index) -> List[str]:
        linkedin = _text(data, "linkedin")
        if not linkedin or profile.personal_info.linkedin:
            return []
        profile.personal_info.linkedin = normalize_linkedin(linkedin)
        return ["linkedin"]

    def _apply_linkedin_data(self, profile, data, loop_index) -> List[str]:
        changed: List[str] = []
        if data.get("linkedinData"):
            parsed = LinkedInData.model_validate(data["linkedinData"])
            profile.linkedin_data = parsed
            changed.append("linkedin_data")
            if parsed.name:
                profile.personal_info.name = parsed.name
                changed.append("name")
        if data.get("linkedinRawData"):
            profile.linkedin_raw_data = str(data["linkedinRawData"])
            changed.append("linkedin_raw_data")
        return changed

    def _apply_career_objectives(self, profile, data, loop_index) -> List[str]:
        changed: List[str] = []
        if data.get("careerObjectives"):
            profile.career_objectives = str(data["careerObjectives"])
            changed.append("career_objectives")
        if data.get("careerObjectivesReport"):
            profile.career_objectives_report = CareerObjectivesReport.model_validate(
                data["careerObjectivesReport"]
            )
            changed.append("career_objectives_report")
        return changed

    def _apply_job_experience_loop(self, profile, data, loop_index) -> List[str]:
        if loop_index is None:
            return []
        changed: List[str] = []
        if data.get("jobExperience"):
            profile.job_experiences[loop_index] = JobExperienceDetail.model_validate(
                data["jobExperience"]
            )
            changed.append("job_experiences")
        if data.get("jobExperienceReport"):
            profile.job_experience_reports[loop_index] = (
                JobExperienceReport.model_validate(data["jobExperienceReport"])
            )
            changed.append("job_experience_reports")
        return changed

    # ==================== degraded path ====================

    def extract_heuristically(
        self, step: StepDefinition, user_input: str, profile: CandidateProfile
    ) -> Optional[Dict[str, Any]]:
        """
        Best-effort data extraction from the raw input.

        Returns data in the same shape as a generated reply's ``data`` object,
        or None when nothing could be extracted.
        """
        text = (user_input or "").strip()
        data: Dict[str, Any] = {}

        if step.name == "welcome":
            if len(text) > 1 and _NAME_RE.match(text):
                data["fullName"] = text
        elif step.name == "email":
            match = _EMAIL_RE.search(text)
            if match and not profile.personal_info.email:
                data["email"] = match.group(0)
        elif step.name == "linkedin":
            match = _LINKEDIN_RE.search(text)
            candidate = match.group(0) if match else None
            if candidate is None and _USERNAME_RE.match(text):
                candidate = text
            if candidate and not profile.personal_info.linkedin:
                data["linkedin"] = candidate
        elif step.name == "linkedin-data":
            if len(text) > 100:
                data["linkedinRawData"] = text
        elif step.name == "career-objectives":
            if len(text) > 10:
                existing = profile.career_objectives or ""
                data["careerObjectives"] = (
                    f"{existing}\n\n{text}" if existing else text
                )

        if data:
            log.info("heuristic_extraction", step=step.name, keys=sorted(data))
            return data
        return None

    def field_value(self, profile: CandidateProfile, field_name: str) -> Any:
        """JSON-ready value of a changed field, for persistence."""
        if field_name in ("name", "email", "linkedin"):
            return getattr(profile.personal_info, field_name)
        value = getattr(profile, field_name, None)
        if hasattr(value, "model_dump"):
            return value.model_dump(mode="json", by_alias=True)
        if isinstance(value, dict):
            return {
                str(k): v.model_dump(mode="json", by_alias=True)
                for k, v in value.items()
            }
        return value
