from __future__ import annotations

import sys
from pathlib import Path

from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from aptitude_prep import db  # noqa: E402  (import after sys.path update)
from aptitude_prep.app import app  # noqa: E402


def test_root_route_returns_success(tmp_path) -> None:
    db.DB_PATH = tmp_path / "smoke.db"
    with TestClient(app) as client:
        response = client.get("/")

    assert response.status_code == 200
    assert "Aptitude Prep" in response.text
    assert "Quantitative Aptitude" in response.text
