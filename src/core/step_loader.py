"""Step table loader.

Loads the ordered interview step definitions from config/interview_steps.yaml.
The table is static: it is read once, validated, cached and never mutated.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from pydantic import ValidationError as PydanticValidationError

from src.core.exceptions import ConfigurationError
from src.domain.models.step import StepDefinition

log = structlog.get_logger(__name__)

DEFAULT_STEPS_FILE = (
    Path(__file__).parent.parent.parent / "config" / "interview_steps.yaml"
)

# Module-level cache (step table does not change at runtime)
_cache: Dict[Path, List[StepDefinition]] = {}


def _read_step_entries(steps_file: Path) -> List[Dict[str, Any]]:
    if not steps_file.exists():
        raise ConfigurationError(f"Step table not found: {steps_file}")

    with open(steps_file) as f:
        data = yaml.safe_load(f) or {}

    entries = data.get("steps") if isinstance(data, dict) else None
    if not entries:
        raise ConfigurationError(f"Step table is empty: {steps_file}")
    return entries


def load_all_steps(steps_file: Optional[Path] = None) -> List[StepDefinition]:
    """Load every step definition, active or not, ordered by id.

    Args:
        steps_file: YAML file to read (default: config/interview_steps.yaml)

    Returns:
        Step definitions sorted by id

    Raises:
        ConfigurationError: If the file is missing, empty, invalid or has
            duplicate ids or names
    """
    steps_file = Path(steps_file or DEFAULT_STEPS_FILE).resolve()

    if steps_file in _cache:
        return list(_cache[steps_file])

    try:
        steps = [StepDefinition(**entry) for entry in _read_step_entries(steps_file)]
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid step table {steps_file}: {e}") from e

    steps.sort(key=lambda s: s.id)

    ids = [s.id for s in steps]
    names = [s.name for s in steps]
    if len(set(ids)) != len(ids) or len(set(names)) != len(names):
        raise ConfigurationError(f"Duplicate step id or name in {steps_file}")

    loop_steps = [s.name for s in steps if s.is_dynamic_loop]
    if len(loop_steps) > 1:
        raise ConfigurationError(
            f"At most one dynamic loop step is supported, found: {loop_steps}"
        )

    _cache[steps_file] = steps
    log.info(
        "step_table_loaded",
        path=str(steps_file),
        total=len(steps),
        active=sum(1 for s in steps if s.active),
    )
    return list(steps)


def load_steps(steps_file: Optional[Path] = None) -> List[StepDefinition]:
    """Load the active steps (the traversal sequence), ordered by id."""
    return [s for s in load_all_steps(steps_file) if s.active]


def get_step(name: str, steps_file: Optional[Path] = None) -> StepDefinition:
    """Look up a step by name.

    Raises:
        KeyError: If no step has that name
    """
    for step in load_all_steps(steps_file):
        if step.name == name:
            return step
    raise KeyError(name)


def clear_cache() -> None:
    """Clear the step table cache (mainly for testing)."""
    _cache.clear()
