"""User-facing option side file.

The file is a flat list of ``Key=Value`` lines using PascalCase keys::

    RandomMode=False
    SpecMapPercentageChance=50

Values go through pydantic's lax coercion, so ``true``/``1``/``yes`` all
parse as booleans. Anything unreadable falls back to the built-in
defaults, which are then written back so the user has a file to edit.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_pascal

from equanimity.exceptions import EquanimityConfigError

_logger = logging.getLogger(__name__)

_COMMENT_PREFIXES = ("#", ";")


class Options(BaseModel):
    """Immutable option snapshot for one run."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_pascal,
    )

    random_mode: bool = False
    """Stage one random asset per category instead of the fixed common assets."""
    quit_after_copy: bool = False
    """Terminate once a batch's reload requests have all been issued."""
    delete_paints_folder: bool = False
    """Remove provisioned assets from disk on cleanup."""
    only_races: bool = False
    """Ignore session updates unless the event type is ``Race``."""
    spec_map_percentage_chance: int = Field(default=100, ge=0, le=100)
    """Probability of including the spec map layer."""
    car_specific_helmet_suit: bool = False
    """Take helmet and suit from the car's common folder instead of the global pool."""
    log_to_file: bool = False
    """Mirror console logging to a per-run log file."""
    read_only_paints: bool = False
    """Mark provisioned files read-only."""
    copy_numbers: bool = True
    copy_decals: bool = True
    copy_helmet_suit: bool = True


def parse_options_text(text: str) -> Options:
    """Parse the flat ``Key=Value`` format.

    Raises
    ------
    EquanimityConfigError
        On a line without ``=`` or a value pydantic rejects.
    """
    raw: dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith(_COMMENT_PREFIXES):
            continue
        key, sep, value = stripped.partition("=")
        if not sep or not key.strip():
            raise EquanimityConfigError(f"Line {lineno}: expected Key=Value, got {stripped!r}")
        raw[key.strip()] = value.strip()

    try:
        return Options.model_validate(raw)
    except ValidationError as exc:
        raise EquanimityConfigError(f"Invalid option value: {exc}") from exc


def format_options(options: Options) -> str:
    lines = []
    for key, value in options.model_dump(by_alias=True).items():
        lines.append(f"{key}={value}")
    return "\n".join(lines) + "\n"


def save_options(path: Path, options: Options) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(format_options(options), encoding="utf-8")


def load_options(path: Path) -> Options:
    """Load options, falling back to (and persisting) defaults on any error."""
    try:
        text = path.read_text(encoding="utf-8")
        options = parse_options_text(text)
    except FileNotFoundError:
        _logger.info("Option file %s not found, writing defaults", path)
    except (OSError, UnicodeDecodeError) as exc:
        _logger.warning("Could not read option file %s (%s), using defaults", path, exc)
    except EquanimityConfigError as exc:
        _logger.warning("Option file %s is invalid (%s), using defaults", path, exc)
    else:
        _logger.debug("Loaded options from %s: %s", path, options)
        return options

    options = Options()
    try:
        save_options(path, options)
    except OSError as exc:
        _logger.warning("Could not write default option file %s: %s", path, exc)
    return options
