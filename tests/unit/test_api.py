"""Tests for the HTTP API."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from shopflags.core.config import Settings
from shopflags.core.experiments import (
    Experiment,
    ExperimentEngine,
    ExperimentStatus,
    ExperimentTracker,
    InMemoryAssignmentStore,
    Targeting,
    Variant,
)
from shopflags.core.feature_flags import (
    FeatureFlag,
    FeatureFlagEvaluator,
    FlagCondition,
    FlagConditionType,
)
from shopflags.main import create_app


def make_flags():
    return [
        FeatureFlag(key="x", enabled=True, rollout=50),
        FeatureFlag(key="off", enabled=False),
        FeatureFlag(key="launch", enabled=True, start_date="2025-06-01"),
        FeatureFlag(
            key="staging-only",
            enabled=True,
            conditions=[FlagCondition(FlagConditionType.ENVIRONMENT, "equals", "staging")],
        ),
    ]


def make_experiments():
    return [
        Experiment(
            id="e1",
            status=ExperimentStatus.RUNNING,
            variants=[
                Variant(id="a", weight=1, config={"layout": "grid"}),
                Variant(id="b", weight=1, config={"layout": "list"}),
            ],
        ),
        Experiment(
            id="admins",
            status=ExperimentStatus.RUNNING,
            variants=[Variant(id="a", weight=1)],
            targeting=Targeting(user_roles=["admin"]),
        ),
        Experiment(id="draft", variants=[Variant(id="a", weight=1)]),
    ]


class LoopCheckingStore(InMemoryAssignmentStore):
    """Records whether each write ran on an event loop thread."""

    def __init__(self):
        super().__init__()
        self.on_event_loop = []

    def append(self, assignment):
        try:
            asyncio.get_running_loop()
            self.on_event_loop.append(True)
        except RuntimeError:
            self.on_event_loop.append(False)
        super().append(assignment)


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event_name, properties):
        self.events.append((event_name, properties))


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def engine():
    return ExperimentEngine(make_experiments(), store=InMemoryAssignmentStore())


def build_client(engine, recorder, **settings):
    app = create_app(
        settings=Settings(ENVIRONMENT="staging", ASSIGNMENT_STORE_BACKEND="none", **settings),
        flag_evaluator=FeatureFlagEvaluator(make_flags(), environment="staging"),
        experiment_engine=engine,
        tracker=ExperimentTracker(recorder),
    )
    return TestClient(app)


@pytest.fixture
def client(engine, recorder):
    return build_client(engine, recorder)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["environment"] == "staging"
        assert data["flags"] == 4
        assert data["experiments"] == 3


class TestFlagsApi:
    """Tests for /api/v1/flags."""

    def test_list_flags(self, client):
        response = client.get("/api/v1/flags")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 4
        assert {f["key"] for f in data["flags"]} == {"x", "off", "launch", "staging-only"}

    def test_evaluate_enabled(self, client):
        response = client.post("/api/v1/flags/x/evaluate", json={"user": {"id": "ab"}})
        assert response.status_code == 200
        data = response.json()
        assert data["flag_key"] == "x"
        assert data["enabled"] is True
        assert data["reason"] == "All conditions met"
        assert data["metadata"] == {"rollout": 50, "conditions": 0}

    def test_evaluate_outside_rollout(self, client):
        data = client.post("/api/v1/flags/x/evaluate", json={"user": {"id": "u1"}}).json()
        assert data["enabled"] is False
        assert data["reason"] == "Outside rollout percentage"
        assert data["metadata"]["user_hash"] == 76

    def test_evaluate_unknown_flag(self, client):
        """Unknown flags are a normal response, not a 404."""
        response = client.post("/api/v1/flags/missing/evaluate", json={})
        assert response.status_code == 200
        assert response.json()["reason"] == "Flag not found"

    def test_evaluate_disabled(self, client):
        data = client.post("/api/v1/flags/off/evaluate", json={}).json()
        assert data["reason"] == "Flag is disabled"

    def test_evaluate_with_current_date(self, client):
        before = client.post(
            "/api/v1/flags/launch/evaluate", json={"current_date": "2025-05-31T00:00:00Z"}
        ).json()
        after = client.post(
            "/api/v1/flags/launch/evaluate", json={"current_date": "2025-06-02T00:00:00Z"}
        ).json()
        assert before["reason"] == "Outside date range"
        assert after["enabled"] is True

    def test_environment_defaults_to_service(self, client):
        default = client.post("/api/v1/flags/staging-only/evaluate", json={}).json()
        override = client.post(
            "/api/v1/flags/staging-only/evaluate", json={"environment": "production"}
        ).json()
        assert default["enabled"] is True
        assert override["reason"] == "Conditions not met"

    def test_invalid_payload(self, client):
        response = client.post("/api/v1/flags/x/evaluate", json={"user": {"role": "admin"}})
        assert response.status_code == 422


class TestExperimentsApi:
    """Tests for /api/v1/experiments."""

    def test_list_experiments(self, client):
        data = client.get("/api/v1/experiments").json()
        assert data["total"] == 3

    def test_list_active(self, client):
        data = client.get("/api/v1/experiments", params={"active_only": "true"}).json()
        assert [e["id"] for e in data["experiments"]] == ["e1", "admins"]

    def test_assign(self, client, engine):
        response = client.post("/api/v1/experiments/e1/assign", json={"session": {"id": "s-"}})
        assert response.status_code == 200
        data = response.json()
        assert data["is_participant"] is True
        assert data["variant_id"] == "a"
        assert data["reason"] == "Successfully assigned"
        assert data["config"] == {"layout": "grid"}
        assert data["assignment"]["sessionId"] == "s-"
        assert len(engine.store.load()) == 1

    def test_assign_is_sticky(self, client):
        payload = {"session": {"id": "s_"}}
        first = client.post("/api/v1/experiments/e1/assign", json=payload).json()
        second = client.post("/api/v1/experiments/e1/assign", json=payload).json()
        assert first["variant_id"] == "b"
        assert second["variant_id"] == "b"
        assert second["reason"] == "Previously assigned"

    def test_assign_targeting(self, client):
        payload = {"user": {"id": "u1", "role": "user"}}
        data = client.post("/api/v1/experiments/admins/assign", json=payload).json()
        assert data["is_participant"] is False
        assert data["reason"] == "Does not meet targeting criteria"
        assert data["config"] is None

    def test_assign_not_active(self, client):
        data = client.post("/api/v1/experiments/draft/assign", json={}).json()
        assert data["reason"] == "Experiment not active"

    def test_assign_tracks_view(self, client, recorder):
        client.post(
            "/api/v1/experiments/e1/assign",
            json={"session": {"id": "s-"}, "track_view": True},
        )
        client.post(
            "/api/v1/experiments/admins/assign",
            json={"user": {"id": "u1", "role": "user"}, "track_view": True},
        )
        assert recorder.events == [
            ("experiment.view", {"experiment_id": "e1", "variant_id": "a"})
        ]

    def test_store_writes_off_event_loop(self, recorder):
        store = LoopCheckingStore()
        engine = ExperimentEngine(make_experiments(), store=store)
        client = build_client(engine, recorder)

        response = client.post("/api/v1/experiments/e1/assign", json={"session": {"id": "s1"}})
        assert response.status_code == 200
        assert store.on_event_loop == [False]

    def test_user_assignments_and_removal(self, client):
        client.post("/api/v1/experiments/e1/assign", json={"user": {"id": "u1"}})
        client.post(
            "/api/v1/experiments/admins/assign", json={"user": {"id": "u1", "role": "admin"}}
        )

        data = client.get("/api/v1/experiments/assignments/u1").json()
        assert data["user_id"] == "u1"
        assert {a["experimentId"] for a in data["assignments"]} == {"e1", "admins"}

        response = client.delete("/api/v1/experiments/e1/assignments", params={"user_id": "u1"})
        assert response.status_code == 200
        assert response.json() == {"experiment_id": "e1", "removed": 1}

        data = client.get("/api/v1/experiments/assignments/u1").json()
        assert [a["experimentId"] for a in data["assignments"]] == ["admins"]


class TestApiKey:
    """Tests for X-API-Key enforcement."""

    def test_missing_key(self, engine, recorder):
        client = build_client(engine, recorder, API_KEY="secret")
        response = client.get("/api/v1/flags")
        assert response.status_code == 401

    def test_wrong_key(self, engine, recorder):
        client = build_client(engine, recorder, API_KEY="secret")
        response = client.get("/api/v1/flags", headers={"X-API-Key": "nope"})
        assert response.status_code == 403

    def test_valid_key(self, engine, recorder):
        client = build_client(engine, recorder, API_KEY="secret")
        response = client.post(
            "/api/v1/experiments/e1/assign",
            json={"session": {"id": "s1"}},
            headers={"X-API-Key": "secret"},
        )
        assert response.status_code == 200

    def test_health_is_open(self, engine, recorder):
        client = build_client(engine, recorder, API_KEY="secret")
        assert client.get("/health").status_code == 200
