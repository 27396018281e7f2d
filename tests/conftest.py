"""Shared fixtures: every test gets its own SQLite file under tmp_path."""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture()
def data_dir(tmp_path, monkeypatch):
    from examprep.config import settings

    monkeypatch.setattr(settings, "data_dir", tmp_path)
    return tmp_path


@pytest.fixture()
def client(data_dir):
    from examprep import create_app

    with TestClient(create_app()) as c:
        yield c


@pytest.fixture()
def basic_card() -> dict:
    return {
        "type": "basic",
        "difficulty": "medium",
        "category": "DIREITO",
        "subcategory": "Penal",
        "tags": ["CP", "HOMICIDIO"],
        "status": "published",
        "front": "Art. 121 do Código Penal",
        "back": "Matar alguém. Pena - reclusão, de seis a vinte anos.",
        "author_id": "1",
        "author_name": "Admin",
    }
