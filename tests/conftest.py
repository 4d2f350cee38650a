import pytest
from fastapi.testclient import TestClient

from bucketlab.api.deps import get_repository
from bucketlab.main import app
from bucketlab.services.experiments.assignment import VariationConfig
from bucketlab.services.experiments.repository import InMemoryExperimentRepository


@pytest.fixture
def repository():
    return InMemoryExperimentRepository()


@pytest.fixture
def client(repository):
    app.dependency_overrides[get_repository] = lambda: repository
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def ab_variations():
    return [
        VariationConfig(id="A", name="control", weight=50, is_control=True),
        VariationConfig(id="B", name="treatment", weight=50),
    ]


@pytest.fixture
def experiment_payload():
    return {
        "name": "Pricing page redesign",
        "description": "New layout for the pricing table",
        "traffic_allocation": 100,
        "variations": [
            {"name": "control", "weight": 50, "is_control": True},
            {"name": "redesign", "weight": 50, "url": "/pricing?v=2"},
        ],
    }
