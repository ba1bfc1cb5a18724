"""Shared fixtures: a throwaway workbook store and an API client bound to it."""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

import settings
from app import app, get_store
from init_sheets import init_workbook
from sheets import SheetError, SheetStore, WorkbookStore


@pytest.fixture(autouse=True)
def fixed_offset(monkeypatch):
    monkeypatch.setattr(settings, "UTC_OFFSET_HOURS", 6)


@pytest.fixture
def store(tmp_path):
    return WorkbookStore(tmp_path / "sheetflow.xlsx")


@pytest.fixture
def seeded_store(store):
    init_workbook(store)
    return store


@pytest.fixture
def now():
    return datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


class BrokenStore(SheetStore):
    """Every read and write fails the way an unreachable backend would."""

    def get_values(self, sheet):
        raise SheetError("backend unavailable")

    def get_sheet_id(self, sheet):
        raise SheetError("backend unavailable")

    def batch_update(self, requests):
        raise SheetError("backend unavailable")

    def sheet_names(self):
        raise SheetError("backend unavailable")


@pytest.fixture
def broken_store():
    return BrokenStore()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
