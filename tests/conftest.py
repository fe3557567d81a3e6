from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from bandpoll.app import create_app
from bandpoll.notifier import ResponseNotifier
from tests.utils import make_settings


@pytest.fixture
def client(tmp_path: Path) -> Iterator[TestClient]:
    app = create_app(make_settings(tmp_path), notifier=ResponseNotifier([]))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def created_poll(client: TestClient) -> Dict[str, str]:
    res = client.post(
        "/api/polls",
        json={
            "title": "Winter rehearsals",
            "description": "Sunday sessions",
            "duration": "2h",
            "dates": ["2024-01-14", "2024-01-07"],
            "participants": ["Alice", "Bob"],
            "instruments": ["drums", "piano"],
        },
    )
    assert res.status_code == 201
    return res.json()
