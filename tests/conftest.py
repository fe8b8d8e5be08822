import json
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from agents.day_planner_agent import DayPlannerAgent
from agents.schedule_content_agent import ScheduleContentAgent
from agents.week_planner_agent import WeekPlannerAgent
from db.schedule_repository import ScheduleRepository
from models.plan_models import StudyPlan, StudyPlanCreateRequest, StudyPlanUpdateRequest
from models.schedule_models import ScheduleType
from services.schedule_service import ScheduleService


class FailingChatModel(FakeListChatModel):
    """Chat model whose every call fails like an unreachable provider"""
    responses: list = ["unused"]

    def _call(self, *args, **kwargs):
        raise ConnectionError("model unreachable")


def topics_json(*topics) -> str:
    return json.dumps({"topics": [
        {"name": name, "type": kind, "difficulty": difficulty, "duration_minutes": minutes}
        for name, kind, difficulty, minutes in topics
    ]})


def fake_model(*responses: str) -> FakeListChatModel:
    return FakeListChatModel(responses=list(responses))


class InMemoryScheduleRepository(ScheduleRepository):
    """ScheduleRepository keeping rows in a list; rows go through the real column conversion"""

    def __init__(self):
        super().__init__(db_pool=None)
        self.rows: List[dict] = []

    async def _insert(self, values: dict):
        row = {**values, "id": uuid4(), "created_at": datetime.now(timezone.utc)}
        self.rows.append(row)
        return self.row_to_schedule(row)

    def _find(self, schedule_id) -> Optional[dict]:
        schedule_uuid = self._ensure_uuid(schedule_id)
        return next((row for row in self.rows if row["id"] == schedule_uuid), None)

    async def get_schedule(self, schedule_id):
        row = self._find(schedule_id)
        return self.row_to_schedule(row) if row else None

    async def get_latest_schedule(self, plan_id, schedule_type, number):
        validated_type = self._validate_enum(schedule_type, self.VALID_SCHEDULE_TYPES, "schedule_type")
        number_column = "day_number" if validated_type == ScheduleType.DAILY.value else "week_number"
        matches = [
            row for row in self.rows
            if row["study_plan_id"] == plan_id and row["type"] == validated_type and row[number_column] == number
        ]
        return self.row_to_schedule(matches[-1]) if matches else None

    async def list_schedules(self, plan_id):
        return [self.row_to_schedule(row) for row in self.rows if row["study_plan_id"] == plan_id]

    async def update_schedule_status(self, schedule_id, status):
        validated_status = self._validate_enum(status, self.VALID_STATUSES, "schedule_status")
        row = self._find(schedule_id)
        if not row:
            return None
        metadata = json.loads(row["metadata"])
        metadata["status"] = validated_status
        row["metadata"] = json.dumps(metadata)
        return self.row_to_schedule(row)

    async def delete_schedule(self, schedule_id):
        row = self._find(schedule_id)
        if not row:
            return False
        self.rows.remove(row)
        return True


class InMemoryStudyPlanRepository:
    def __init__(self):
        self.plans = {}
        self._next_id = 1

    async def create_plan(self, request: StudyPlanCreateRequest) -> StudyPlan:
        plan = StudyPlan(id=self._next_id, **request.model_dump())
        self.plans[plan.id] = plan
        self._next_id += 1
        return plan

    async def get_plan(self, plan_id: int) -> Optional[StudyPlan]:
        return self.plans.get(plan_id)

    async def list_plans(self, user_id: Optional[str] = None) -> List[StudyPlan]:
        return [p for p in self.plans.values() if user_id is None or p.user_id == user_id]

    async def update_plan(self, plan_id: int, changes: StudyPlanUpdateRequest) -> Optional[StudyPlan]:
        plan = self.plans.get(plan_id)
        if not plan:
            return None
        changed = changes.model_dump(exclude_unset=True, exclude_none=True)
        updated = StudyPlan.model_validate({**plan.model_dump(), **changed})
        self.plans[plan_id] = updated
        return updated

    async def delete_plan(self, plan_id: int) -> bool:
        return self.plans.pop(plan_id, None) is not None


@pytest.fixture
def sample_plan() -> StudyPlan:
    return StudyPlan(
        id=1,
        user_id="user-1",
        exam="GATE CSE",
        study_duration="3 months",
        daily_hours=6,
        subjects=["Math", "Science"],
        study_style=["Practice-oriented"],
    )


@pytest.fixture
def failing_agent() -> ScheduleContentAgent:
    return ScheduleContentAgent(FailingChatModel())


@pytest.fixture
def schedule_repo() -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository()


@pytest.fixture
def offline_service(failing_agent, schedule_repo) -> ScheduleService:
    """Schedule service whose model always fails, so every content value is a fallback"""
    return ScheduleService(
        day_planner=DayPlannerAgent(failing_agent),
        week_planner=WeekPlannerAgent(failing_agent),
        schedule_repo=schedule_repo,
    )
