"""Collected candidate data.

Everything the interview learns about the user: personal details, the parsed
LinkedIn profile, career objectives and per-job experience notes. Field names
are snake_case in Python; the model's JSON replies use camelCase, mapped
through aliases.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PersonalInfo(_WireModel):
    name: str = ""
    email: str = ""
    linkedin: str = ""


class LinkedInExperience(_WireModel):
    """One position from the LinkedIn experience section."""

    title: str = ""
    company: str = ""
    duration: str = ""
    location: Optional[str] = None
    description: Optional[str] = None

    @property
    def label(self) -> str:
        if self.title and self.company:
            return f"{self.title} at {self.company}"
        return self.title or self.company or "this role"


class LinkedInEducation(_WireModel):
    school: str = ""
    degree: str = ""
    duration: str = ""
    description: Optional[str] = None


class LinkedInData(_WireModel):
    """Parsed LinkedIn profile. Experience is ordered most recent first."""

    name: str = ""
    headline: str = ""
    location: Optional[str] = None
    about: Optional[str] = None
    experience: List[LinkedInExperience] = Field(default_factory=list)
    education: List[LinkedInEducation] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)


class JobExperienceDetail(_WireModel):
    job_title: str = Field(default="", alias="jobTitle")
    company: str = ""
    duration: str = ""
    achievements: str = ""
    challenges: Optional[str] = None
    skills: Optional[str] = None
    impact: Optional[str] = None
    learnings: Optional[str] = None


class CareerObjectivesReport(_WireModel):
    summary: str = ""
    ideal_role: str = Field(default="", alias="idealRole")
    company_preferences: str = Field(default="", alias="companyPreferences")
    short_term_goals: str = Field(default="", alias="shortTermGoals")
    long_term_vision: str = Field(default="", alias="longTermVision")
    key_motivations: str = Field(default="", alias="keyMotivations")
    growth_areas: str = Field(default="", alias="growthAreas")
    generated_at: datetime = Field(default_factory=_now, alias="generatedAt")


class JobExperienceReport(_WireModel):
    job_title: str = Field(default="", alias="jobTitle")
    company: str = ""
    duration: str = ""
    overall_summary: str = Field(default="", alias="overallSummary")
    key_achievements: List[str] = Field(default_factory=list, alias="keyAchievements")
    challenges_overcome: List[str] = Field(
        default_factory=list, alias="challengesOvercome"
    )
    skills_developed: List[str] = Field(default_factory=list, alias="skillsDeveloped")
    measurable_impact: List[str] = Field(
        default_factory=list, alias="measurableImpact"
    )
    key_learnings: List[str] = Field(default_factory=list, alias="keyLearnings")
    resume_bullet_points: List[str] = Field(
        default_factory=list, alias="resumeBulletPoints"
    )
    professional_growth: str = Field(default="", alias="professionalGrowth")
    generated_at: datetime = Field(default_factory=_now, alias="generatedAt")


class CandidateProfile(_WireModel):
    """All data collected during one interview."""

    personal_info: PersonalInfo = Field(
        default_factory=PersonalInfo, alias="personalInfo"
    )
    linkedin_raw_data: Optional[str] = Field(default=None, alias="linkedinRawData")
    linkedin_data: Optional[LinkedInData] = Field(
        default=None, alias="linkedinParsedData"
    )
    career_objectives: Optional[str] = Field(default=None, alias="careerObjectives")
    career_objectives_report: Optional[CareerObjectivesReport] = Field(
        default=None, alias="careerObjectivesReport"
    )
    job_experiences: Dict[int, JobExperienceDetail] = Field(
        default_factory=dict, alias="jobExperiences"
    )
    job_experience_reports: Dict[int, JobExperienceReport] = Field(
        default_factory=dict, alias="jobExperienceReports"
    )

    @property
    def experience(self) -> List[LinkedInExperience]:
        """Source collection for the work experience loop."""
        if self.linkedin_data is None:
            return []
        return list(self.linkedin_data.experience)

    def to_prompt_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
