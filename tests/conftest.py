from __future__ import annotations

from pathlib import Path

import pytest

from helpers import GLOBAL_FILES, make_car


@pytest.fixture
def paint_root(tmp_path: Path) -> Path:
    root = tmp_path / "paint"
    global_common = root / "common"
    global_common.mkdir(parents=True)
    for name, content in GLOBAL_FILES.items():
        (global_common / name).write_bytes(content)
    make_car(root, "ovalA")
    make_car(root, "ovalB")
    return root
