from __future__ import annotations

import random
import stat
from pathlib import Path

import pytest

from equanimity.exceptions import EquanimityProvisionError
from equanimity.options import Options
from equanimity.provisioner import (
    AssetCategory,
    AssetProvisioner,
    copy_asset,
    purge_participant_assets,
)

from helpers import driver


def _is_read_only(path: Path) -> bool:
    return not stat.S_IMODE(path.stat().st_mode) & stat.S_IWRITE


def test_provision_copies_every_layer(paint_root: Path) -> None:
    provisioner = AssetProvisioner(paint_root, Options())

    result = provisioner.provision(driver(5, 2, "ovalA"))

    car_dir = paint_root / "ovalA"
    assert (car_dir / "car_5.tga").read_bytes() == b"car"
    assert (car_dir / "car_spec_5.mip").read_bytes() == b"spec"
    assert (car_dir / "car_num_5.tga").read_bytes() == b"num"
    assert (car_dir / "decal_5.tga").read_bytes() == b"decal"
    assert (paint_root / "helmet_5.tga").read_bytes() == b"global-helmet"
    assert (paint_root / "suit_5.tga").read_bytes() == b"global-suit"
    assert len(result.copied) == 6
    assert result.failed == []
    assert provisioner.provisioned_files == frozenset(result.copied)


def test_car_specific_helmet_suit(paint_root: Path) -> None:
    provisioner = AssetProvisioner(paint_root, Options(car_specific_helmet_suit=True))

    provisioner.provision(driver(7, 3, "ovalB"))

    assert (paint_root / "helmet_7.tga").read_bytes() == b"car-helmet"
    assert (paint_root / "suit_7.tga").read_bytes() == b"car-suit"


def test_optional_layers_can_be_disabled(paint_root: Path) -> None:
    options = Options(copy_numbers=False, copy_decals=False, copy_helmet_suit=False)
    provisioner = AssetProvisioner(paint_root, options)

    result = provisioner.provision(driver(5, 2))

    assert sorted(p.name for p in result.copied) == ["car_5.tga", "car_spec_5.mip"]


def test_zero_spec_map_chance_never_copies_spec_map(paint_root: Path) -> None:
    provisioner = AssetProvisioner(paint_root, Options(spec_map_percentage_chance=0), rng=random.Random(1))

    assert provisioner.include_spec_map is False
    for identity in range(1, 30):
        assert provisioner.roll_spec_map() is False
        assert provisioner.include_spec_map is False
        provisioner.provision(driver(identity, identity))

    assert list((paint_root / "ovalA").glob("car_spec_*.mip")) == []


def test_full_spec_map_chance_always_copies(paint_root: Path) -> None:
    provisioner = AssetProvisioner(paint_root, Options(spec_map_percentage_chance=100), rng=random.Random(1))

    assert provisioner.include_spec_map is True
    assert all(provisioner.roll_spec_map() for _ in range(50))


def test_missing_common_file_is_skipped_not_fatal(paint_root: Path) -> None:
    (paint_root / "ovalA" / "common" / "car_common.tga").unlink()
    provisioner = AssetProvisioner(paint_root, Options())

    result = provisioner.provision(driver(5, 2, "ovalA"))

    assert not (paint_root / "ovalA" / "car_5.tga").exists()
    assert paint_root / "ovalA" / "common" / "car_common.tga" in result.missing
    assert (paint_root / "ovalA" / "decal_5.tga").exists()


def test_unknown_car_path_provisions_only_global_assets(paint_root: Path) -> None:
    provisioner = AssetProvisioner(paint_root, Options())

    result = provisioner.provision(driver(5, 2, "mystery"))

    assert sorted(p.name for p in result.copied) == ["helmet_5.tga", "suit_5.tga"]
    assert len(result.missing) == 4


def test_read_only_paints_can_be_overwritten(paint_root: Path) -> None:
    provisioner = AssetProvisioner(paint_root, Options(read_only_paints=True))
    target = paint_root / "ovalA" / "car_5.tga"

    provisioner.provision(driver(5, 2))
    assert _is_read_only(target)

    (paint_root / "ovalA" / "common" / "car_common.tga").write_bytes(b"car-v2")
    provisioner.provision(driver(5, 2))

    assert target.read_bytes() == b"car-v2"
    assert _is_read_only(target)


def test_copy_failure_raises_provision_error(tmp_path: Path) -> None:
    source = tmp_path / "car_common.tga"
    source.write_bytes(b"car")

    with pytest.raises(EquanimityProvisionError) as excinfo:
        copy_asset(source, tmp_path / "missing" / "car_5.tga", category=AssetCategory.CAR)

    assert "directory not found" in str(excinfo.value)
    assert excinfo.value.category == "car"


def test_remove_provisioned_deletes_only_own_files(paint_root: Path) -> None:
    provisioner = AssetProvisioner(paint_root, Options(read_only_paints=True))
    provisioner.provision(driver(5, 2))
    foreign = paint_root / "ovalA" / "car_99.tga"
    foreign.write_bytes(b"someone else")

    removed = provisioner.remove_provisioned()

    assert removed == 6
    assert not (paint_root / "ovalA" / "car_5.tga").exists()
    assert foreign.exists()
    assert provisioner.provisioned_files == frozenset()


def test_purge_removes_participant_files_everywhere(paint_root: Path) -> None:
    AssetProvisioner(paint_root, Options(read_only_paints=True)).provision(driver(5, 2))
    (paint_root / "ovalB" / "car_spec_77.mip").write_bytes(b"x")
    (paint_root / "ovalB" / "notes.txt").write_text("keep")

    removed = purge_participant_assets(paint_root)

    names = sorted(p.name for p in removed)
    assert names == [
        "car_5.tga",
        "car_num_5.tga",
        "car_spec_5.mip",
        "car_spec_77.mip",
        "decal_5.tga",
        "helmet_5.tga",
        "suit_5.tga",
    ]
    assert (paint_root / "ovalB" / "notes.txt").exists()
    assert (paint_root / "ovalA" / "common" / "car_common.tga").exists()
    assert (paint_root / "common" / "helmet_common.tga").exists()


class TestRandomMode:
    @staticmethod
    def _make_pool(common: Path, category: str, names: list[str]) -> Path:
        pool = common / "random" / category
        pool.mkdir(parents=True)
        for name in names:
            (pool / name).write_bytes(name.encode())
        return pool

    def test_stages_from_pool_once_per_connection(self, paint_root: Path) -> None:
        common = paint_root / "ovalA" / "common"
        pool = self._make_pool(common, "car", ["red.tga", "blue.tga"])
        options = Options(random_mode=True, copy_numbers=False, copy_decals=False, copy_helmet_suit=False)
        provisioner = AssetProvisioner(paint_root, options, rng=random.Random(3))

        provisioner.provision(driver(5, 2))
        first = (paint_root / "ovalA" / "car_5.tga").read_bytes()
        assert first in {b"red.tga", b"blue.tga"}

        # Pool gone: the staged file from this connection is reused.
        for path in pool.iterdir():
            path.unlink()
        provisioner.provision(driver(7, 3))
        assert (paint_root / "ovalA" / "car_7.tga").read_bytes() == first

        # After a reconnect the pool is consulted again and is now empty.
        provisioner.reset_staging()
        result = provisioner.provision(driver(8, 4))
        assert not (paint_root / "ovalA" / "car_8.tga").exists()
        assert result.copied == []

    def test_stage_per_participant_restages(self, paint_root: Path) -> None:
        common = paint_root / "ovalA" / "common"
        pool = self._make_pool(common, "car", ["red.tga"])
        options = Options(random_mode=True, copy_numbers=False, copy_decals=False, copy_helmet_suit=False)
        provisioner = AssetProvisioner(paint_root, options, rng=random.Random(3), stage_per_participant=True)

        provisioner.provision(driver(5, 2))
        assert (paint_root / "ovalA" / "car_5.tga").read_bytes() == b"red.tga"

        (pool / "red.tga").unlink()
        (pool / "green.tga").write_bytes(b"green.tga")
        provisioner.provision(driver(7, 3))
        assert (paint_root / "ovalA" / "car_7.tga").read_bytes() == b"green.tga"

    def test_pool_ignores_other_extensions(self, paint_root: Path) -> None:
        common = paint_root / "ovalA" / "common"
        self._make_pool(common, "car_spec", ["shiny.mip", "readme.txt"])
        options = Options(random_mode=True, copy_numbers=False, copy_decals=False, copy_helmet_suit=False)
        provisioner = AssetProvisioner(paint_root, options, rng=random.Random(0))

        for _ in range(5):
            provisioner.reset_staging()
            provisioner.provision(driver(5, 2))
            assert (paint_root / "ovalA" / "car_spec_5.mip").read_bytes() == b"shiny.mip"

    def test_unreadable_pool_fails_only_that_asset(self, paint_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        self._make_pool(paint_root / "ovalA" / "common", "car", ["red.tga"])
        blocked = self._make_pool(paint_root / "ovalB" / "common", "car", ["blue.tga"])
        self._make_pool(paint_root / "ovalB" / "common", "car_num", ["seven.tga"])
        real_iterdir = Path.iterdir

        def iterdir(self: Path):  # type: ignore[no-untyped-def]
            if self == blocked:
                raise PermissionError(13, "Permission denied", str(self))
            return real_iterdir(self)

        monkeypatch.setattr(Path, "iterdir", iterdir)
        options = Options(random_mode=True, copy_decals=False, copy_helmet_suit=False)
        provisioner = AssetProvisioner(paint_root, options, rng=random.Random(0))

        result = provisioner.provision(driver(7, 3, "ovalB"))

        assert [exc.category for exc in result.failed] == ["car"]
        assert "access denied" in str(result.failed[0])
        assert result.copied == [paint_root / "ovalB" / "car_num_7.tga"]
        assert not (paint_root / "ovalB" / "car_7.tga").exists()

        provisioner.provision(driver(9, 4, "ovalA"))
        assert (paint_root / "ovalA" / "car_9.tga").read_bytes() == b"red.tga"
