import logging
from collections.abc import Mapping
from typing import List, Optional, Union

from agents.day_planner_agent import DayPlannerAgent, normalize_study_plan
from agents.week_planner_agent import WeekPlannerAgent
from db.schedule_repository import AnySchedule, ScheduleRepository
from models.plan_models import StudyPlan
from models.schedule_models import DayMetadata, DaySchedule, ScheduleStatus, ScheduleType, WeekSchedule
from utils.errors import InvalidInputError


def build_day_metadata(plan: StudyPlan, day_number: int, total_days: int) -> DayMetadata:
    return DayMetadata(
        current_day=day_number,
        total_days=total_days,
        progress=day_number / total_days * 100,
        daily_hours=plan.daily_hours,
        status=ScheduleStatus.PENDING,
    )


class ScheduleService:
    """Generates day and week schedules and stores each one exactly once.

    Composition errors (``InvalidInputError``) and storage errors propagate to
    the caller unchanged; nothing here retries.
    """

    def __init__(self, day_planner: DayPlannerAgent, week_planner: WeekPlannerAgent,
                 schedule_repo: ScheduleRepository):
        self.day_planner = day_planner
        self.week_planner = week_planner
        self.schedule_repo = schedule_repo
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def validate_schedule_params(day_number: int, total_days: int) -> None:
        if not isinstance(day_number, int) or day_number < 1:
            raise InvalidInputError(f"Invalid day number: {day_number}")
        if not isinstance(total_days, int) or total_days < day_number:
            raise InvalidInputError(f"Invalid total days: {total_days} (day {day_number})")

    async def generate_day_schedule(self, plan: Union[StudyPlan, Mapping], day_number: int,
                                    total_days: int) -> DaySchedule:
        normalized = normalize_study_plan(plan).unwrap()
        self.validate_schedule_params(day_number, total_days)

        day_plan = await self.day_planner.compose_day(normalized, day_number)
        metadata = build_day_metadata(normalized, day_number, total_days)

        schedule = await self.schedule_repo.create_day_schedule(normalized, day_number, day_plan, metadata)
        self.logger.info(f"Generated day {day_number}/{total_days} schedule {schedule.id} for plan {normalized.id}")
        return schedule

    async def generate_week_schedule(self, plan: Union[StudyPlan, Mapping], week_number: int,
                                     total_weeks: int) -> WeekSchedule:
        normalized = normalize_study_plan(plan).unwrap()

        week_plan = await self.week_planner.compose_week(normalized, week_number, total_weeks)

        schedule = await self.schedule_repo.create_week_schedule(normalized, week_plan)
        self.logger.info(f"Generated week {week_number}/{total_weeks} schedule {schedule.id} for plan {normalized.id}")
        return schedule

    async def get_schedule(self, schedule_id) -> Optional[AnySchedule]:
        return await self.schedule_repo.get_schedule(schedule_id)

    async def get_latest_day_schedule(self, plan_id: int, day_number: int) -> Optional[AnySchedule]:
        return await self.schedule_repo.get_latest_schedule(plan_id, ScheduleType.DAILY.value, day_number)

    async def get_latest_week_schedule(self, plan_id: int, week_number: int) -> Optional[AnySchedule]:
        return await self.schedule_repo.get_latest_schedule(plan_id, ScheduleType.WEEKLY.value, week_number)

    async def list_schedules(self, plan_id: int) -> List[AnySchedule]:
        return await self.schedule_repo.list_schedules(plan_id)

    async def update_schedule_status(self, schedule_id, status: ScheduleStatus) -> Optional[AnySchedule]:
        return await self.schedule_repo.update_schedule_status(schedule_id, status.value)

    async def delete_schedule(self, schedule_id) -> bool:
        return await self.schedule_repo.delete_schedule(schedule_id)
