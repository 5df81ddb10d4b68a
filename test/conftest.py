"""Pytest configuration and fixtures for coach AI tests."""

import json
import os
import sys
import tempfile
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


TODAY = "2024-05-08"


def make_workout(date, exercises, completed=True, duration=None, **extra):
    """Stored workout record in the app's camelCase shape."""
    record = {
        "id": f"w-{date}",
        "date": date,
        "isCompleted": completed,
        "exercises": exercises,
    }
    if duration is not None:
        record["durationMinutes"] = duration
    record.update(extra)
    return record


def make_exercise(name, sets=None, muscle_group=None, **extra):
    exercise = {"name": name}
    if sets is not None:
        exercise["performedSets"] = [{"reps": reps, "weight": weight} for reps, weight in sets]
    if muscle_group:
        exercise["muscleGroup"] = muscle_group
    exercise.update(extra)
    return exercise


@pytest.fixture(scope="function")
def temp_db_path():
    """Create a temporary database file for each test."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield Path(db_path)
    # Cleanup after test
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def sqlite_store(temp_db_path):
    from coach_ai.storage import SQLiteStore
    return SQLiteStore(temp_db_path)


@pytest.fixture
def memory_store():
    from coach_ai.storage import MemoryStore
    return MemoryStore()


@pytest.fixture
def sample_workouts():
    """Three completed sessions in the last week plus one open draft."""
    return [
        make_workout("2024-05-01", [
            make_exercise("Bench Press", [("8", 80), ("8", 80)], "Chest"),
            make_exercise("Barbell Row", [("10", 60)], "Back"),
        ], duration=45),
        make_workout("2024-05-04", [
            make_exercise("Squat", [("5", 100), ("5", 100), ("5", 100)], "Legs"),
            make_exercise("Bench Press", [("8", 82.5)], "Chest"),
        ], duration=50),
        make_workout("2024-05-07", [
            make_exercise("Bench Press", [("6", 85)], "Chest"),
            make_exercise("Barbell Row", [("10", 62.5)], "Back"),
        ], duration=40),
        make_workout("2024-05-08", [
            make_exercise("Deadlift", [("5", 140)], "Back"),
        ], completed=False),
    ]


@pytest.fixture
def sample_context(sample_workouts):
    return {"workouts": sample_workouts, "weeklyGoal": 4, "todayISO": TODAY}


@pytest.fixture
def empty_context():
    return {"workouts": [], "weeklyGoal": 3, "todayISO": TODAY}


@pytest.fixture
def client_config():
    """Relay client pointed at a fake endpoint with fast retries."""
    from coach_ai.config import ClientConfig
    return ClientConfig(
        endpoint="https://relay.test/ai-chat",
        token="client-secret",
        timeout_seconds=1.0,
        retries=1,
        backoff_seconds=0.0,
    )


# ==================== Relay Fixtures ====================

class FakeUpstream:
    """Records requests to the completion API and answers with a canned body."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.body = {"output_text": "Kör tre set knäböj idag."}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status_code, json=self.body)
        return httpx.Response(self.status_code, text=self.body)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def relay_config():
    from coach_ai.config import RelayConfig
    return RelayConfig(openai_api_key="sk-test", rate_limit_max=60)


@pytest.fixture(scope="function")
def relay_client(relay_config, upstream):
    """TestClient for the relay with the upstream API mocked out."""
    from server import create_app
    app = create_app(relay_config, transport=httpx.MockTransport(upstream.handler))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def chat_payload():
    return {
        "message": "vad ska jag köra nästa pass?",
        "lang": "sv",
        "contextSummary": {"totalSessions": 3, "sessions7": 3},
        "coachProfile": {"goal": "Bli starkare"},
        "history": [{"role": "user", "text": "hej"}, {"role": "assistant", "text": "Hej! Vad vill du träna?"}],
        "responseStyle": {"tone": "direct-human-coach", "structure": "question-first-adaptive", "maxLength": 650},
    }
