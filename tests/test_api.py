import pytest
from fastapi.testclient import TestClient

from schedule_server.main import app, get_plan_repo, get_schedule_service

from tests.conftest import InMemoryStudyPlanRepository


PLAN_PAYLOAD = {
    "user_id": "user-1",
    "exam": "GATE CSE",
    "study_duration": "3 months",
    "daily_hours": 6,
    "subjects": ["Math", "Science"],
    "preferences": {"start_time": "08:00"},
}


@pytest.fixture
def client(offline_service):
    plan_repo = InMemoryStudyPlanRepository()
    app.dependency_overrides[get_plan_repo] = lambda: plan_repo
    app.dependency_overrides[get_schedule_service] = lambda: offline_service
    # no context manager: the lifespan would connect to the database
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_plan(client, **overrides):
    response = client.post("/study-plans", json={**PLAN_PAYLOAD, **overrides})
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "fallbacks" in response.json()["ai_stats"]


def test_study_plan_crud(client):
    plan = create_plan(client)

    assert client.get(f"/study-plans/{plan['id']}").json()["exam"] == "GATE CSE"
    assert client.get("/study-plans", params={"user_id": "user-1"}).json()["total_count"] == 1
    assert client.get("/study-plans", params={"user_id": "other"}).json()["total_count"] == 0

    updated = client.patch(f"/study-plans/{plan['id']}", json={"daily_hours": 8})
    assert updated.json()["daily_hours"] == 8

    assert client.delete(f"/study-plans/{plan['id']}").status_code == 200
    assert client.get(f"/study-plans/{plan['id']}").status_code == 404


def test_study_sessions_round_trip(client):
    plan = create_plan(client, study_sessions=[
        {"day": 1, "topics": ["Sets"], "resources": [{"name": "Textbook", "type": "book"}]},
    ])

    sessions = client.get(f"/study-plans/{plan['id']}").json()["study_sessions"]
    assert [(s["day"], s["topics"], s["completed"]) for s in sessions] == [("1", ["Sets"], False)]
    assert sessions[0]["resources"] == [{"name": "Textbook", "type": "book"}]

    kept = client.patch(f"/study-plans/{plan['id']}", json={"daily_hours": 8}).json()
    assert [s["day"] for s in kept["study_sessions"]] == ["1"]

    replaced = client.patch(f"/study-plans/{plan['id']}", json={
        "study_sessions": [{"day": "2", "topics": ["Optics"], "completed": True}],
    }).json()
    assert [(s["day"], s["completed"], s["resources"]) for s in replaced["study_sessions"]] == [("2", True, [])]


def test_study_session_resource_needs_name(client):
    response = client.post("/study-plans", json={
        **PLAN_PAYLOAD, "study_sessions": [{"day": 1, "resources": [{"name": "", "type": "book"}]}],
    })
    assert response.status_code == 422


@pytest.mark.parametrize("changes", [{"daily_hours": 0}, {"subjects": []}, {"daily_hours": 30}])
def test_invalid_plan_is_rejected(client, changes):
    response = client.post("/study-plans", json={**PLAN_PAYLOAD, **changes})
    assert response.status_code == 422


def test_generate_and_fetch_day_schedule(client):
    plan = create_plan(client)

    response = client.post(f"/study-plans/{plan['id']}/schedules/day", json={"day_number": 1})

    assert response.status_code == 201
    day = response.json()
    assert day["metadata"]["total_days"] == 90
    assert [s["start_time"] for s in day["sessions"]] == ["8:00 AM", "10:00 AM", "12:00 PM"]
    assert [b["type"] for b in day["breaks"]] == ["LUNCH", "SHORT"]

    latest = client.get(f"/study-plans/{plan['id']}/schedules/day/1")
    assert latest.json()["id"] == day["id"]
    assert client.get(f"/schedules/{day['id']}").json()["focus"] == "Day 1 Study: Math"


def test_generate_week_schedule_derives_total_weeks(client):
    plan = create_plan(client)

    response = client.post(f"/study-plans/{plan['id']}/schedules/week", json={"week_number": 13})

    assert response.status_code == 201
    week = response.json()
    assert week["total_weeks"] == 13
    assert week["metadata"]["week_archetype"] == "FINAL_REVISION"
    assert set(week["days"]) == {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}


def test_out_of_range_schedule_requests(client):
    plan = create_plan(client)

    assert client.post(f"/study-plans/{plan['id']}/schedules/day",
                       json={"day_number": 5, "total_days": 4}).status_code == 400
    assert client.post(f"/study-plans/{plan['id']}/schedules/week",
                       json={"week_number": 14}).status_code == 400
    assert client.post(f"/study-plans/{plan['id']}/schedules/day",
                       json={"day_number": 0}).status_code == 422
    assert client.post("/study-plans/999/schedules/day", json={"day_number": 1}).status_code == 404


def test_unparseable_duration_requires_total_days(client):
    plan = create_plan(client, study_duration="until I feel ready")

    assert client.post(f"/study-plans/{plan['id']}/schedules/day",
                       json={"day_number": 1}).status_code == 400
    assert client.post(f"/study-plans/{plan['id']}/schedules/day",
                       json={"day_number": 1, "total_days": 30}).status_code == 201


def test_schedule_status_list_and_delete(client):
    plan = create_plan(client)
    day = client.post(f"/study-plans/{plan['id']}/schedules/day", json={"day_number": 2}).json()
    client.post(f"/study-plans/{plan['id']}/schedules/week", json={"week_number": 1})

    listing = client.get(f"/study-plans/{plan['id']}/schedules").json()
    assert listing["total_count"] == 2

    patched = client.patch(f"/schedules/{day['id']}/status", json={"status": "COMPLETED"})
    assert patched.json()["metadata"]["status"] == "COMPLETED"
    assert client.patch(f"/schedules/{day['id']}/status", json={"status": "DONE"}).status_code == 422

    assert client.delete(f"/schedules/{day['id']}").status_code == 200
    assert client.get(f"/schedules/{day['id']}").status_code == 404
    assert client.get("/schedules/not-a-uuid").status_code == 400
    assert client.get(f"/study-plans/{plan['id']}/schedules/week/9").status_code == 404
