"""Copy shared "common" paint files into participant-specific paint files.

Layout under the paint root::

    <root>/<car_path>/common/car_common.tga        -> <root>/<car_path>/car_<id>.tga
    <root>/<car_path>/common/car_spec_common.mip   -> <root>/<car_path>/car_spec_<id>.mip
    <root>/<car_path>/common/car_num_common.tga    -> <root>/<car_path>/car_num_<id>.tga
    <root>/<car_path>/common/decal_common.tga      -> <root>/<car_path>/decal_<id>.tga
    <root>/common/helmet_common.tga                -> <root>/helmet_<id>.tga
    <root>/common/suit_common.tga                  -> <root>/suit_<id>.tga

Helmet and suit come from ``<root>/<car_path>/common`` instead when
``CarSpecificHelmetSuit`` is set.

In random mode each source folder also holds ``random/<category>/``
pools. Staging copies one randomly chosen pool file over
``random/<common name>`` and provisioning then reads from there.
"""

from __future__ import annotations

import dataclasses
import errno
import logging
import os
import random
import re
import shutil
import stat
from enum import StrEnum
from pathlib import Path

from equanimity.exceptions import EquanimityProvisionError
from equanimity.models import ParticipantDescriptor
from equanimity.options import Options

_logger = logging.getLogger(__name__)

_WRITABLE = stat.S_IREAD | stat.S_IWRITE
_READ_ONLY = stat.S_IREAD | stat.S_IRGRP | stat.S_IROTH

_PARTICIPANT_FILE_RE = re.compile(r"^(car|car_spec|car_num|decal|helmet|suit)_(\d+)\.(tga|mip)$", re.IGNORECASE)


class AssetCategory(StrEnum):
    CAR = "car"
    SPEC_MAP = "car_spec"
    NUMBER = "car_num"
    DECAL = "decal"
    HELMET = "helmet"
    SUIT = "suit"


@dataclasses.dataclass(frozen=True)
class AssetLayout:
    """File naming for one asset category."""

    category: AssetCategory
    extension: str
    per_car: bool

    @property
    def common_name(self) -> str:
        return f"{self.category.value}_common{self.extension}"

    def target_name(self, identity: int) -> str:
        return f"{self.category.value}_{identity}{self.extension}"


LAYOUTS: dict[AssetCategory, AssetLayout] = {
    AssetCategory.CAR: AssetLayout(AssetCategory.CAR, ".tga", per_car=True),
    AssetCategory.SPEC_MAP: AssetLayout(AssetCategory.SPEC_MAP, ".mip", per_car=True),
    AssetCategory.NUMBER: AssetLayout(AssetCategory.NUMBER, ".tga", per_car=True),
    AssetCategory.DECAL: AssetLayout(AssetCategory.DECAL, ".tga", per_car=True),
    AssetCategory.HELMET: AssetLayout(AssetCategory.HELMET, ".tga", per_car=False),
    AssetCategory.SUIT: AssetLayout(AssetCategory.SUIT, ".tga", per_car=False),
}


@dataclasses.dataclass
class ProvisionResult:
    """Outcome of provisioning one participant."""

    identity: int
    copied: list[Path] = dataclasses.field(default_factory=list)
    missing: list[Path] = dataclasses.field(default_factory=list)
    failed: list[EquanimityProvisionError] = dataclasses.field(default_factory=list)


def _make_writable(path: Path) -> None:
    try:
        os.chmod(path, _WRITABLE)
    except FileNotFoundError:
        return


def _describe_os_error(exc: OSError) -> str:
    if isinstance(exc, PermissionError):
        return "access denied"
    if exc.errno == errno.ENAMETOOLONG:
        return "path too long"
    if isinstance(exc, FileNotFoundError):
        return "directory not found"
    return "I/O error"


def copy_asset(source: Path, target: Path, *, category: AssetCategory, read_only: bool = False) -> None:
    """Copy *source* over *target*, overwriting a read-only target.

    Raises
    ------
    EquanimityProvisionError
        When the copy fails at the OS level.
    """
    try:
        if target.exists():
            _make_writable(target)
        shutil.copyfile(source, target)
        if read_only:
            os.chmod(target, _READ_ONLY)
    except OSError as exc:
        raise EquanimityProvisionError(
            f"Cannot write {category.value} paint {target}: {_describe_os_error(exc)} ({exc})",
            category=category.value,
            path=str(target),
        ) from exc


def remove_asset(path: Path) -> bool:
    """Delete a provisioned file, clearing its read-only bit first."""
    try:
        _make_writable(path)
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def purge_participant_assets(paint_root: Path) -> list[Path]:
    """Delete every participant-specific paint under *paint_root*.

    Only files named like ``car_<id>.tga`` directly in the root or in a
    car folder are touched; ``common`` folders are left alone.
    """
    removed: list[Path] = []
    if not paint_root.is_dir():
        return removed

    folders = [paint_root] + sorted(p for p in paint_root.iterdir() if p.is_dir() and p.name.lower() != "common")
    for folder in folders:
        for path in sorted(folder.iterdir()):
            if not path.is_file() or not _PARTICIPANT_FILE_RE.match(path.name):
                continue
            try:
                if remove_asset(path):
                    removed.append(path)
            except OSError as exc:
                _logger.warning("Could not delete %s: %s", path, exc)
    _logger.info("Purged %d participant paint files under %s", len(removed), paint_root)
    return removed


class AssetProvisioner:
    """Provision paint files for newly observed participants.

    Holds the per-connection random choices: the spec-map coin flip and
    which random pools have already been staged.
    """

    def __init__(
        self,
        paint_root: Path,
        options: Options,
        *,
        rng: random.Random | None = None,
        stage_per_participant: bool = False,
    ) -> None:
        self._paint_root = paint_root
        self._options = options
        self._rng = rng or random.Random()
        self._stage_per_participant = stage_per_participant
        self._include_spec_map = options.spec_map_percentage_chance >= 100
        self._staged: set[Path] = set()
        self._provisioned: set[Path] = set()

    @property
    def paint_root(self) -> Path:
        return self._paint_root

    @property
    def options(self) -> Options:
        return self._options

    @property
    def include_spec_map(self) -> bool:
        return self._include_spec_map

    @property
    def provisioned_files(self) -> frozenset[Path]:
        return frozenset(self._provisioned)

    def update_options(self, options: Options) -> None:
        self._options = options

    def roll_spec_map(self) -> bool:
        """Flip the spec-map coin for every participant until the next flip."""
        chance = self._options.spec_map_percentage_chance
        self._include_spec_map = self._rng.randint(1, 100) <= chance
        _logger.info(
            "Spec maps %s (chance %d%%)",
            "enabled" if self._include_spec_map else "disabled",
            chance,
        )
        return self._include_spec_map

    def reset_staging(self) -> None:
        """Forget staged random assets so the next participant re-stages."""
        self._staged.clear()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _car_common_dir(self, asset_path: str) -> Path:
        return self._paint_root / asset_path / "common"

    def source_dir(self, layout: AssetLayout, asset_path: str) -> Path:
        if layout.per_car or self._options.car_specific_helmet_suit:
            return self._car_common_dir(asset_path)
        return self._paint_root / "common"

    def target_path(self, layout: AssetLayout, descriptor: ParticipantDescriptor) -> Path:
        folder = self._paint_root / descriptor.asset_path if layout.per_car else self._paint_root
        return folder / layout.target_name(descriptor.identity)

    def _categories(self) -> list[AssetCategory]:
        categories = [AssetCategory.CAR]
        if self._include_spec_map:
            categories.append(AssetCategory.SPEC_MAP)
        if self._options.copy_numbers:
            categories.append(AssetCategory.NUMBER)
        if self._options.copy_decals:
            categories.append(AssetCategory.DECAL)
        if self._options.copy_helmet_suit:
            categories.extend((AssetCategory.HELMET, AssetCategory.SUIT))
        return categories

    # ------------------------------------------------------------------
    # Random staging
    # ------------------------------------------------------------------

    def stage_random(self, layout: AssetLayout, source_dir: Path) -> Path | None:
        """Copy one random pool file to the staging location and return it.

        Returns ``None`` when the pool is empty or missing.
        """
        pool_dir = source_dir / "random" / layout.category.value
        staged = source_dir / "random" / layout.common_name
        if not self._stage_per_participant and staged in self._staged:
            return staged

        if not pool_dir.is_dir():
            _logger.info("Random pool does not exist: %s", pool_dir)
            return None
        try:
            pool = sorted(
                p for p in pool_dir.iterdir() if p.is_file() and p.suffix.lower() == layout.extension
            )
        except OSError as exc:
            raise EquanimityProvisionError(
                f"Cannot list random {layout.category.value} pool {pool_dir}: {_describe_os_error(exc)} ({exc})",
                category=layout.category.value,
                path=str(pool_dir),
            ) from exc
        if not pool:
            _logger.info("Random pool is empty: %s", pool_dir)
            return None

        choice = self._rng.choice(pool)
        copy_asset(choice, staged, category=layout.category)
        self._staged.add(staged)
        _logger.debug("Staged %s as %s", choice.name, staged)
        return staged

    def _resolve_source(self, layout: AssetLayout, asset_path: str) -> Path | None:
        source_dir = self.source_dir(layout, asset_path)
        if self._options.random_mode:
            return self.stage_random(layout, source_dir)
        return source_dir / layout.common_name

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def provision(self, descriptor: ParticipantDescriptor) -> ProvisionResult:
        """Copy every enabled asset for *descriptor*.

        Never raises for per-asset failures: each one is logged and
        recorded on the result, and the remaining assets are still tried.
        """
        result = ProvisionResult(identity=descriptor.identity)
        if not descriptor.asset_path:
            _logger.warning("Participant %s has no car path, skipping", descriptor.identity)
            return result

        for category in self._categories():
            layout = LAYOUTS[category]
            target = self.target_path(layout, descriptor)
            try:
                source = self._resolve_source(layout, descriptor.asset_path)
                if source is None:
                    continue
                if not source.is_file():
                    _logger.info("Common %s paint does not exist: %s", category.value, source)
                    result.missing.append(source)
                    continue
                copy_asset(source, target, category=category, read_only=self._options.read_only_paints)
            except EquanimityProvisionError as exc:
                _logger.warning("%s", exc)
                result.failed.append(exc)
                continue

            self._provisioned.add(target)
            result.copied.append(target)
            _logger.info("Copied common %s paint to: %s", category.value, target)

        return result

    def remove_provisioned(self) -> int:
        """Delete every file this provisioner created. Returns the count removed."""
        removed = 0
        for path in sorted(self._provisioned):
            try:
                if remove_asset(path):
                    removed += 1
            except OSError as exc:
                _logger.warning("Could not delete %s: %s", path, exc)
        self._provisioned.clear()
        _logger.info("Removed %d provisioned paint files", removed)
        return removed
