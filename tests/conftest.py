from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING

import pytest

from pildhora.ui import cli

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def clean_pildhora_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("PILDHORA_"):
            monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def reset_cancel_request() -> Iterator[None]:
    cli.cancel_requested.clear()
    yield
    cli.cancel_requested.clear()


@pytest.fixture
def firebase_credentials(tmp_path: Path) -> Path:
    path = tmp_path / "service-account.json"
    path.write_text(json.dumps({"type": "service_account", "project_id": "pildhora-test"}))
    return path
