from __future__ import annotations

import os

import pytest

from nameback import location


@pytest.fixture(autouse=True)
def _non_root_user(monkeypatch) -> None:
    # The pipeline refuses to run as root; CI containers often do.
    monkeypatch.setattr(os, "geteuid", lambda: 1000, raising=False)


@pytest.fixture(autouse=True)
def _fresh_geocode_cache() -> None:
    location.clear_geocode_cache()
