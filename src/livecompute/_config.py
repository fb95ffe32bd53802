"""Engine tunables and loading them from pyproject.toml."""

import dataclasses
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ._coerce import LOCALES, NumberLocale, get_locale
from ._convergence import DEFAULT_HISTORY_SIZE, DEFAULT_RELATIVE_TOLERANCE, DEFAULT_TOLERANCE
from ._debounce import IMMEDIATE_DELAY, SETTLE_DELAY
from ._expr import DEFAULT_PRECISION
from ._scheduler import DEFAULT_BATCH_SIZE, DEFAULT_MAX_QUEUE

TOOL_SECTION = "livecompute"


class ConfigError(Exception):
    """Error in livecompute configuration."""


@dataclass(slots=True, frozen=True)
class EngineSettings:
    """Tunables of the reactive engine.

    Attributes:
        tolerance: Absolute tolerance under which two numbers are converged.
        relative_tolerance: Tolerance relative to the larger magnitude.
        history_size: Values remembered per node for oscillation detection.
        batch_size: Scheduler entries processed before yielding.
        max_queue: Pending entries kept before the oldest low-priority ones drop.
        max_passes: Evaluations allowed per node in one propagation cycle.
        precision: Decimal places numeric results are rounded to.
        immediate_delay: Debounce window (seconds) for direct edits.
        settle_delay: Debounce window (seconds) for propagated and structural changes.
        edit_cooldown: Seconds after a manual edit during which a
            skip-while-editing node is not recomputed.
        locale: Name of the number locale ("id" or "en").

    """

    tolerance: float = DEFAULT_TOLERANCE
    relative_tolerance: float = DEFAULT_RELATIVE_TOLERANCE
    history_size: int = DEFAULT_HISTORY_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE
    max_queue: int = DEFAULT_MAX_QUEUE
    max_passes: int = 3
    precision: int = DEFAULT_PRECISION
    immediate_delay: float = IMMEDIATE_DELAY
    settle_delay: float = SETTLE_DELAY
    edit_cooldown: float = 0.5
    locale: str = "id"

    @property
    def number_locale(self) -> NumberLocale:
        return get_locale(self.locale)


def settings_from_mapping(values: dict[str, Any], *, section: str = f"[tool.{TOOL_SECTION}]") -> EngineSettings:
    """Validate a mapping of tunables into EngineSettings.

    Args:
        values: Raw values, e.g. a parsed TOML table.
        section: Name used in error messages.

    Raises:
        ConfigError: On unknown keys, wrong types or out-of-range values.

    """
    fields = {f.name: f for f in dataclasses.fields(EngineSettings)}
    parsed: dict[str, Any] = {}

    for key, value in values.items():
        field = fields.get(key.replace("-", "_"))
        if field is None:
            msg = f"Unknown key in {section}: '{key}'"
            raise ConfigError(msg)

        if field.type in ("float", float):
            if isinstance(value, bool) or not isinstance(value, int | float):
                msg = f"Invalid {section}.{key}: expected number"
                raise ConfigError(msg)
            if value < 0:
                msg = f"Invalid {section}.{key}: must not be negative"
                raise ConfigError(msg)
            parsed[field.name] = float(value)
        elif field.type in ("int", int):
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"Invalid {section}.{key}: expected integer"
                raise ConfigError(msg)
            if value < 1 and field.name != "precision":
                msg = f"Invalid {section}.{key}: must be at least 1"
                raise ConfigError(msg)
            parsed[field.name] = value
        else:
            if value not in LOCALES:
                msg = f"Invalid {section}.{key}: expected one of {sorted(LOCALES)}"
                raise ConfigError(msg)
            parsed[field.name] = value

    return EngineSettings(**parsed)


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def load_settings_file(pyproject_path: Path) -> EngineSettings:
    """Load and validate [tool.livecompute] from a pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed settings; defaults when the section is absent.

    Raises:
        ConfigError: If the file or the section is invalid

    """
    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    section = data.get("tool", {}).get(TOOL_SECTION, {})
    if not isinstance(section, dict):
        msg = f"Invalid [tool.{TOOL_SECTION}]: expected a table"
        raise ConfigError(msg)
    return settings_from_mapping(section)


def load_settings(start_dir: Path | None = None) -> EngineSettings:
    """Get settings from the nearest pyproject.toml, or defaults if there is none."""
    pyproject_path = find_pyproject_toml(start_dir)
    if pyproject_path is None:
        return EngineSettings()
    return load_settings_file(pyproject_path)
