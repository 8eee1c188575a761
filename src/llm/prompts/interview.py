"""
Prompts for interview reply generation.

The structured prompt is assembled from:
- Base instructions and the JSON reply contract
- Current and next step
- Everything collected so far (candidate profile)
- Work experience loop context (loop step only)
- Step-specific instructions from the step table
- Report requirements (career objectives, job experience)

The fallback prompt is a short plain-text variant used after the provider
rejected the structured request.
"""

from datetime import datetime, timezone
from typing import Optional

from src.domain.models.candidate import CandidateProfile
from src.domain.models.loop_state import LoopContext
from src.domain.models.step import StepDefinition

CAREER_OBJECTIVES_STEP = "career-objectives"

REPLY_CONTRACT = """RESPONSE FORMAT: respond with a single JSON object:
{
  "message": "conversational reply to the user (under 80 words)",
  "data": { ...structured data extracted for the current step... },
  "shouldAdvance": true or false,
  "confidence": 0-100 (confidence in the extracted data)
}"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _loop_section(loop_context: LoopContext) -> str:
    job = loop_context.current_item
    lines = [
        "",
        "## Work experience loop",
        f'Current job: "{job.title}" at "{job.company}"'
        f' ({job.duration or "duration not specified"})',
    ]
    if job.description:
        lines.append(f'Description: "{job.description}"')
    lines.append(
        f"This is job {loop_context.index + 1} of {loop_context.total}, "
        f"their {loop_context.position_label.upper()} position."
    )

    nxt = loop_context.next_item
    if loop_context.has_more_items and nxt is not None:
        lines.append(f'Next job: "{nxt.title}" at "{nxt.company}".')
        lines.append(
            "When the user asks to move on, say: "
            f'"Great insights about your role as {job.title} at {job.company}! '
            f'Now let\'s talk about your previous position as {nxt.title} at {nxt.company}."'
        )
    else:
        lines.append(
            "This is the last job. When the user asks to move on, thank them and "
            "say you have everything needed for their resume."
        )

    lines.append(
        f"""
When the user asks to move on, data must contain both:
"jobExperience": {{"jobTitle": "{job.title}", "company": "{job.company}", "duration": "{job.duration}",
  "achievements": "...", "challenges": "...", "skills": "...", "impact": "...", "learnings": "..."}},
"jobExperienceReport": {{"jobTitle": "{job.title}", "company": "{job.company}", "duration": "{job.duration}",
  "overallSummary": "...", "keyAchievements": [], "challengesOvercome": [], "skillsDeveloped": [],
  "measurableImpact": [], "keyLearnings": [], "resumeBulletPoints": [],
  "professionalGrowth": "...", "generatedAt": "{_now_iso()}"}}"""
    )
    return "\n".join(lines)


def _career_objectives_section() -> str:
    return f"""
## Report requirement
When advancing, data must also contain:
"careerObjectivesReport": {{"summary": "...", "idealRole": "...", "companyPreferences": "...",
  "shortTermGoals": "...", "longTermVision": "...", "keyMotivations": "...",
  "growthAreas": "...", "generatedAt": "{_now_iso()}"}}"""


def get_interview_system_prompt(
    step: StepDefinition,
    next_step: Optional[StepDefinition],
    profile: CandidateProfile,
    loop_context: Optional[LoopContext] = None,
) -> str:
    """
    Get system prompt for a structured interview reply.

    Args:
        step: Current step
        next_step: Step that follows, or None on the last step
        profile: Data collected so far
        loop_context: Current job context (loop step only)

    Returns:
        System prompt string
    """
    next_label = f"{next_step.name} - {next_step.title}" if next_step else "Complete"

    prompt = f"""You are an expert career assistant conducting a structured, spoken resume interview.
You must respond in valid JSON only.

CURRENT STEP: {step.name} - {step.title}
NEXT STEP: {next_label}

COLLECTED SO FAR:
{profile.to_prompt_json()}

{REPLY_CONTRACT}

Guidelines:
- Be warm, professional and encouraging; keep replies short enough to be spoken
- Extract the data this step asks for
- Advance whenever the input reasonably satisfies the step; do not demand perfection
- If the input is unclear, ask for clarification and set shouldAdvance to false"""

    if loop_context is not None and step.is_dynamic_loop:
        prompt += "\n" + _loop_section(loop_context)

    prompt += f"""

## Step instructions
{step.system_prompt.strip()}"""

    if step.name == CAREER_OBJECTIVES_STEP:
        prompt += "\n" + _career_objectives_section()

    return prompt


def get_fallback_prompt(
    step: StepDefinition, loop_context: Optional[LoopContext] = None
) -> str:
    """System prompt for the degraded plain-text path."""
    prompt = (
        "You are a helpful career assistant conducting a resume interview. "
        f"We are on the {step.title} step. "
        "Reply to the user briefly and naturally, in plain text, under 50 words."
    )
    if loop_context is not None:
        job = loop_context.current_item
        prompt += f" We are discussing their role as {job.title} at {job.company}."
    return prompt
