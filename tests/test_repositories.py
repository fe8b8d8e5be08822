import json
from collections import namedtuple
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from db.postgres_client import init_schema
from db.schedule_repository import ScheduleRepository
from db.study_plan_repository import StudyPlanRepository
from models.plan_models import StudyPlanCreateRequest, StudyPlanUpdateRequest, StudySession
from models.schedule_models import DayMetadata, DayPlan, ScheduleStatus, WeekSchedule


RecordedQuery = namedtuple("RecordedQuery", "query args in_transaction")


class RecordingConnection:
    """asyncpg connection stand-in: canned results in call order, every query recorded"""

    def __init__(self, rows=(), fetched=(), values=(), status="DELETE 1"):
        self.rows = list(rows)
        self.fetched = list(fetched)
        self.values = list(values)
        self.status = status
        self.queries = []
        self.in_transaction = False

    @asynccontextmanager
    async def transaction(self):
        self.in_transaction = True
        try:
            yield
        finally:
            self.in_transaction = False

    def _record(self, query, args):
        self.queries.append(RecordedQuery(" ".join(query.split()), args, self.in_transaction))

    def queries_on(self, table):
        return [q for q in self.queries if table in q.query]

    async def fetchrow(self, query, *args):
        self._record(query, args)
        return self.rows.pop(0) if self.rows else None

    async def fetch(self, query, *args):
        self._record(query, args)
        return self.fetched.pop(0) if self.fetched else []

    async def fetchval(self, query, *args):
        self._record(query, args)
        return self.values.pop(0) if self.values else None

    async def execute(self, query, *args):
        self._record(query, args)
        return self.status

    async def executemany(self, query, args):
        self._record(query, tuple(args))


class RecordingPool:
    def __init__(self, connection):
        self.connection = connection

    @asynccontextmanager
    async def acquire(self):
        yield self.connection


def plan_row(**overrides):
    row = {
        "id": 1, "user_id": "user-1", "exam": "GATE CSE", "study_duration": "3 months",
        "daily_hours": 6, "subjects": ["Math", "Science"], "optionals": [], "study_style": [],
        "number_of_attempts": 1, "preferences": '{"start_time": "08:00"}',
        "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc), "updated_at": None,
    }
    row.update(overrides)
    return row


def session_row(session_id=10, plan_id=1, day="1", topics=("Sets",), resources='[]', completed=False):
    return {
        "id": session_id, "study_plan_id": plan_id, "day": day, "topics": list(topics),
        "completed": completed, "resources": resources,
    }


@pytest.mark.asyncio
async def test_create_plan_serializes_preferences():
    connection = RecordingConnection(rows=[plan_row()])
    repo = StudyPlanRepository(RecordingPool(connection))

    plan = await repo.create_plan(StudyPlanCreateRequest(
        user_id="user-1", exam="GATE CSE", study_duration="3 months", daily_hours=6,
        subjects=["Math", "Science"], preferences={"start_time": "08:00"},
    ))

    query, args, _ = connection.queries[0]
    assert query.startswith("INSERT INTO study_plans")
    assert args[-1] == '{"start_time": "08:00"}'
    assert plan.preferences == {"start_time": "08:00"}
    assert plan.study_sessions == []
    assert connection.queries_on("study_sessions") == []


@pytest.mark.asyncio
async def test_create_plan_inserts_sessions_and_resources_in_one_transaction():
    connection = RecordingConnection(
        rows=[plan_row()],
        values=[10, 11],
        fetched=[[
            session_row(10, resources='[{"name": "Khan Academy", "type": "video"}]'),
            session_row(11, day="2", topics=("Optics",)),
        ]],
    )
    repo = StudyPlanRepository(RecordingPool(connection))

    plan = await repo.create_plan(StudyPlanCreateRequest(
        user_id="user-1", exam="GATE CSE", study_duration="3 months", daily_hours=6,
        subjects=["Math", "Science"],
        study_sessions=[
            {"day": 1, "topics": ["Sets"], "resources": [{"name": "Khan Academy", "type": "video"}]},
            {"day": "2", "topics": ["Optics"]},
        ],
    ))

    session_inserts = [q for q in connection.queries if q.query.startswith("INSERT INTO study_sessions")]
    assert [q.args for q in session_inserts] == [(1, "1", ["Sets"], False), (1, "2", ["Optics"], False)]
    resource_inserts = [q for q in connection.queries if q.query.startswith("INSERT INTO resources")]
    assert [q.args for q in resource_inserts] == [((10, "Khan Academy", "video"),)]
    assert all(q.in_transaction for q in connection.queries if q.query.startswith("INSERT"))

    assert [s.id for s in plan.study_sessions] == [10, 11]
    assert plan.study_sessions[0].resources[0].name == "Khan Academy"
    assert plan.study_sessions[1].resources == []


@pytest.mark.asyncio
async def test_get_plan_reads_nested_sessions():
    connection = RecordingConnection(
        rows=[plan_row()],
        fetched=[[session_row(resources=[{"name": "Textbook", "type": "book"}], completed=True)]],
    )
    repo = StudyPlanRepository(RecordingPool(connection))

    plan = await repo.get_plan(1)

    assert plan.study_sessions == [StudySession(
        id=10, day="1", topics=["Sets"], completed=True, resources=[{"name": "Textbook", "type": "book"}],
    )]
    assert connection.queries_on("FROM study_sessions")[0].args == ([1],)


@pytest.mark.asyncio
async def test_list_plans_groups_sessions_by_plan():
    connection = RecordingConnection(fetched=[
        [plan_row(id=1), plan_row(id=2)],
        [session_row(10, plan_id=2)],
    ])
    repo = StudyPlanRepository(RecordingPool(connection))

    plans = await repo.list_plans("user-1")

    assert [len(p.study_sessions) for p in plans] == [0, 1]
    assert connection.queries_on("FROM study_sessions")[0].args == ([1, 2],)


@pytest.mark.asyncio
async def test_update_plan_sets_only_given_fields():
    connection = RecordingConnection(rows=[plan_row(daily_hours=8)])
    repo = StudyPlanRepository(RecordingPool(connection))

    plan = await repo.update_plan(1, StudyPlanUpdateRequest(daily_hours=8))

    query, args, _ = connection.queries[0]
    assert "daily_hours = $1" in query
    assert "WHERE id = $2" in query
    assert args == (8, 1)
    assert plan.daily_hours == 8
    assert not [q for q in connection.queries if q.query.startswith("DELETE")]


@pytest.mark.asyncio
async def test_update_plan_replaces_sessions():
    connection = RecordingConnection(rows=[plan_row()], values=[20], fetched=[[session_row(20, day="5")]])
    repo = StudyPlanRepository(RecordingPool(connection))

    plan = await repo.update_plan(1, StudyPlanUpdateRequest(study_sessions=[{"day": 5, "topics": ["Sets"]}]))

    statements = [q.query.split(" (")[0] for q in connection.queries]
    assert statements[:3] == [
        "UPDATE study_plans SET updated_at = NOW() WHERE id = $1 RETURNING id, user_id, exam, study_duration, "
        "daily_hours, subjects, optionals, study_style, number_of_attempts, preferences, created_at, updated_at",
        "DELETE FROM study_sessions WHERE study_plan_id = $1",
        "INSERT INTO study_sessions",
    ]
    assert all(q.in_transaction for q in connection.queries[:3])
    assert [s.day for s in plan.study_sessions] == ["5"]


@pytest.mark.asyncio
async def test_update_with_empty_session_list_clears_sessions():
    connection = RecordingConnection(rows=[plan_row()])
    repo = StudyPlanRepository(RecordingPool(connection))

    plan = await repo.update_plan(1, StudyPlanUpdateRequest(study_sessions=[]))

    assert connection.queries_on("DELETE FROM study_sessions")
    assert not connection.queries_on("INSERT INTO study_sessions")
    assert plan.study_sessions == []


@pytest.mark.asyncio
async def test_missing_plan_and_delete_status():
    connection = RecordingConnection(status="DELETE 0")
    repo = StudyPlanRepository(RecordingPool(connection))

    assert await repo.get_plan(99) is None
    assert await repo.delete_plan(99) is False
    assert connection.queries_on("study_sessions") == []


def test_day_row_values_are_json_columns(sample_plan):
    repo = ScheduleRepository(db_pool=None)
    day_plan = DayPlan(focus="Day 1 Study: Math", sessions=[], breaks=[], daily_targets=["Read"])
    metadata = DayMetadata(current_day=1, total_days=90, progress=1.1, daily_hours=6)

    values = repo.day_schedule_values(sample_plan, 1, day_plan, metadata)

    assert values["type"] == "DAILY"
    assert values["week_number"] is None
    assert json.loads(values["targets"]) == ["Read"]
    assert json.loads(values["metadata"])["status"] == "PENDING"


@pytest.mark.asyncio
async def test_get_schedule_decodes_jsonb_rows(sample_plan, failing_agent):
    from agents.week_planner_agent import WeekPlannerAgent

    week_plan = await WeekPlannerAgent(failing_agent).compose_week(sample_plan, 2, 13)
    values = ScheduleRepository(db_pool=None).week_schedule_values(sample_plan, week_plan)
    schedule_id = uuid4()
    connection = RecordingConnection(rows=[{**values, "id": schedule_id, "created_at": None}])
    repo = ScheduleRepository(RecordingPool(connection))

    schedule = await repo.get_schedule(str(schedule_id))

    assert isinstance(schedule, WeekSchedule)
    assert schedule.id == str(schedule_id)
    assert schedule.to_week_plan() == week_plan
    assert connection.queries[0].args == (schedule_id,)


@pytest.mark.asyncio
@pytest.mark.parametrize("schedule_type, number_column", [("DAILY", "day_number"), ("WEEKLY", "week_number")])
async def test_latest_schedule_query_takes_newest_row(schedule_type, number_column):
    connection = RecordingConnection()
    repo = ScheduleRepository(RecordingPool(connection))

    assert await repo.get_latest_schedule(1, schedule_type, 2) is None

    query, args, _ = connection.queries[0]
    assert f"WHERE study_plan_id = $1 AND type = $2 AND {number_column} = $3" in query
    assert query.endswith("ORDER BY created_at DESC LIMIT 1")
    assert args == (1, schedule_type, 2)


@pytest.mark.asyncio
async def test_list_schedules_orders_by_week_day_then_age():
    connection = RecordingConnection()
    repo = ScheduleRepository(RecordingPool(connection))

    assert await repo.list_schedules(3) == []

    query, args, _ = connection.queries[0]
    assert query.endswith(
        "ORDER BY week_number ASC NULLS FIRST, day_number ASC NULLS FIRST, created_at ASC"
    )
    assert args == (3,)


@pytest.mark.asyncio
async def test_schedule_repository_rejects_bad_input():
    repo = ScheduleRepository(RecordingPool(RecordingConnection()))

    with pytest.raises(ValueError):
        await repo.get_schedule("not-a-uuid")
    with pytest.raises(ValueError):
        await repo.update_schedule_status(uuid4(), "ARCHIVED")
    with pytest.raises(ValueError):
        await repo.get_latest_schedule(1, "MONTHLY", 1)


@pytest.mark.asyncio
async def test_status_update_uses_jsonb_set():
    connection = RecordingConnection()
    repo = ScheduleRepository(RecordingPool(connection))

    assert await repo.update_schedule_status(uuid4(), ScheduleStatus.COMPLETED.value) is None
    query, args, _ = connection.queries[0]
    assert "jsonb_set" in query
    assert args[1] == "COMPLETED"


@pytest.mark.asyncio
async def test_init_schema_enables_uuid_generation_first():
    connection = RecordingConnection()

    await init_schema(RecordingPool(connection))

    schema = connection.queries[0].query
    assert "CREATE EXTENSION IF NOT EXISTS pgcrypto;" in schema
    assert schema.index("CREATE EXTENSION") < schema.index("CREATE TABLE")
    assert "DEFAULT gen_random_uuid()" in schema
    for table in ("study_plans", "schedules", "study_sessions", "resources"):
        assert f"CREATE TABLE IF NOT EXISTS {table}" in schema
