"""Shared pytest fixtures."""

from __future__ import annotations

import os
from typing import Any

import pytest

from tests.helpers import RecordingSleep


@pytest.fixture(autouse=True)
def isolate_nfe_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests only see the NFE_* variables they set themselves."""
    for name in list(os.environ):
        if name.startswith("NFE_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def invoice_payload() -> dict[str, Any]:
    """Return a minimal service invoice payload."""
    return {
        "cityServiceCode": "2690",
        "description": "Consultoria",
        "servicesAmount": 100.0,
        "borrower": {
            "federalTaxNumber": 191,
            "name": "Banco do Brasil SA",
            "email": "financeiro@example.com",
        },
    }
