import logging
import json
import time
from typing import Optional, List, Union
from uuid import UUID
from asyncpg import Pool

from models.plan_models import StudyPlan
from models.schedule_models import (
    DayMetadata, DayPlan, DaySchedule, ScheduleStatus, ScheduleType, WeekPlan, WeekSchedule
)
from utils.logging import log_database_query


AnySchedule = Union[DaySchedule, WeekSchedule]

SCHEDULE_COLUMNS = (
    "id, study_plan_id, user_id, type, day_number, week_number, total_weeks, focus, "
    "sessions, breaks, targets, tests, metadata, created_at"
)


class ScheduleRepository:
    """Stores generated day and week schedules.

    Generated structures go into JSONB columns as plain lists/objects and are
    validated back into the same models on read, so a schedule read back
    compares equal to the one that was written.
    """

    VALID_SCHEDULE_TYPES = {t.value for t in ScheduleType}
    VALID_STATUSES = {s.value for s in ScheduleStatus}

    def __init__(self, db_pool: Pool):
        self.pool = db_pool
        self.logger = logging.getLogger(self.__class__.__name__)
        self.logger.info("ScheduleRepository initialized")

    def _validate_enum(self, value: str, valid_values: set, enum_name: str) -> str:
        """Validate enum values before database operations"""
        if value not in valid_values:
            error_msg = f"Invalid {enum_name}: '{value}'. Valid values: {sorted(valid_values)}"
            self.logger.error(error_msg)
            raise ValueError(error_msg)
        return value

    def _ensure_uuid(self, value) -> UUID:
        """Convert value to UUID if it's not already one"""
        if isinstance(value, UUID):
            return value
        return UUID(str(value))

    def _serialize_json(self, data) -> str:
        """Serialize data to JSON string for JSONB columns"""
        if data is None:
            return "null"
        if isinstance(data, str):
            return data
        return json.dumps(data)

    def _deserialize_json(self, json_str):
        """Deserialize JSON string back to Python object"""
        if json_str is None or isinstance(json_str, (dict, list)):
            return json_str
        return json.loads(json_str)

    def day_schedule_values(self, plan: StudyPlan, day_number: int, day_plan: DayPlan,
                            metadata: DayMetadata) -> dict:
        """Column values for a daily schedule row"""
        return {
            "study_plan_id": plan.id,
            "user_id": plan.user_id,
            "type": ScheduleType.DAILY.value,
            "day_number": day_number,
            "week_number": None,
            "total_weeks": None,
            "focus": day_plan.focus,
            "sessions": self._serialize_json([s.model_dump(mode="json") for s in day_plan.sessions]),
            "breaks": self._serialize_json([b.model_dump(mode="json") for b in day_plan.breaks]),
            "targets": self._serialize_json(day_plan.daily_targets),
            "tests": self._serialize_json([]),
            "metadata": self._serialize_json(metadata.model_dump(mode="json")),
        }

    def week_schedule_values(self, plan: StudyPlan, week_plan: WeekPlan) -> dict:
        """Column values for a weekly schedule row; weekdays go in the sessions column"""
        return {
            "study_plan_id": plan.id,
            "user_id": plan.user_id,
            "type": ScheduleType.WEEKLY.value,
            "day_number": None,
            "week_number": week_plan.week_number,
            "total_weeks": week_plan.total_weeks,
            "focus": week_plan.focus,
            "sessions": self._serialize_json(
                {day: weekday.model_dump(mode="json") for day, weekday in week_plan.days.items()}
            ),
            "breaks": self._serialize_json(week_plan.breaks.model_dump(mode="json")),
            "targets": self._serialize_json(week_plan.weekly_targets),
            "tests": self._serialize_json(week_plan.weekly_tests),
            "metadata": self._serialize_json(week_plan.metadata.model_dump(mode="json")),
        }

    def row_to_schedule(self, row) -> AnySchedule:
        data = dict(row)
        common = {
            "id": str(data["id"]),
            "study_plan_id": data["study_plan_id"],
            "user_id": data["user_id"],
            "focus": data["focus"],
            "metadata": self._deserialize_json(data["metadata"]),
            "created_at": data.get("created_at"),
        }

        if data["type"] == ScheduleType.DAILY.value:
            return DaySchedule.model_validate({
                **common,
                "day_number": data["day_number"],
                "sessions": self._deserialize_json(data["sessions"]) or [],
                "breaks": self._deserialize_json(data["breaks"]) or [],
                "daily_targets": self._deserialize_json(data["targets"]) or [],
            })

        return WeekSchedule.model_validate({
            **common,
            "week_number": data["week_number"],
            "total_weeks": data["total_weeks"],
            "days": self._deserialize_json(data["sessions"]) or {},
            "breaks": self._deserialize_json(data["breaks"]),
            "weekly_targets": self._deserialize_json(data["targets"]) or [],
            "weekly_tests": self._deserialize_json(data["tests"]) or [],
        })

    async def _insert(self, values: dict) -> AnySchedule:
        columns = list(values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                async with connection.transaction():
                    row = await connection.fetchrow(
                        f"INSERT INTO schedules ({', '.join(columns)}) VALUES ({placeholders}) "
                        f"RETURNING {SCHEDULE_COLUMNS}",
                        *values.values()
                    )
                    log_database_query("INSERT", "schedules", (time.time() - started) * 1000, values["user_id"])
                    schedule = self.row_to_schedule(row)
                    self.logger.info(f"Created {values['type']} schedule {schedule.id} for plan {values['study_plan_id']}")
                    return schedule
        except Exception as e:
            self.logger.error(f"Failed to create {values['type']} schedule for plan {values['study_plan_id']}: {e}")
            raise

    async def create_day_schedule(self, plan: StudyPlan, day_number: int, day_plan: DayPlan,
                                  metadata: DayMetadata) -> DaySchedule:
        return await self._insert(self.day_schedule_values(plan, day_number, day_plan, metadata))

    async def create_week_schedule(self, plan: StudyPlan, week_plan: WeekPlan) -> WeekSchedule:
        return await self._insert(self.week_schedule_values(plan, week_plan))

    async def get_schedule(self, schedule_id) -> Optional[AnySchedule]:
        schedule_uuid = self._ensure_uuid(schedule_id)
        self.logger.debug(f"Fetching schedule: {schedule_uuid}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                row = await connection.fetchrow(
                    f"SELECT {SCHEDULE_COLUMNS} FROM schedules WHERE id = $1",
                    schedule_uuid
                )
                log_database_query("SELECT", "schedules", (time.time() - started) * 1000)
                return self.row_to_schedule(row) if row else None
        except Exception as e:
            self.logger.error(f"Failed to fetch schedule {schedule_id}: {e}")
            raise

    async def get_latest_schedule(self, plan_id: int, schedule_type: str, number: int) -> Optional[AnySchedule]:
        """Newest schedule for a (plan, day) or (plan, week) pair"""
        validated_type = self._validate_enum(schedule_type, self.VALID_SCHEDULE_TYPES, "schedule_type")
        number_column = "day_number" if validated_type == ScheduleType.DAILY.value else "week_number"

        self.logger.debug(f"Fetching latest {validated_type} schedule {number} for plan {plan_id}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                row = await connection.fetchrow(
                    f"""SELECT {SCHEDULE_COLUMNS} FROM schedules
                    WHERE study_plan_id = $1 AND type = $2 AND {number_column} = $3
                    ORDER BY created_at DESC LIMIT 1""",
                    plan_id, validated_type, number
                )
                log_database_query("SELECT", "schedules", (time.time() - started) * 1000)
                return self.row_to_schedule(row) if row else None
        except Exception as e:
            self.logger.error(f"Failed to fetch latest schedule for plan {plan_id}: {e}")
            raise

    async def list_schedules(self, plan_id: int) -> List[AnySchedule]:
        self.logger.debug(f"Fetching schedules for plan: {plan_id}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                rows = await connection.fetch(
                    f"""SELECT {SCHEDULE_COLUMNS} FROM schedules WHERE study_plan_id = $1
                    ORDER BY week_number ASC NULLS FIRST, day_number ASC NULLS FIRST, created_at ASC""",
                    plan_id
                )
                log_database_query("SELECT", "schedules", (time.time() - started) * 1000)
                result = [self.row_to_schedule(row) for row in rows]
                self.logger.debug(f"Found {len(result)} schedules for plan {plan_id}")
                return result
        except Exception as e:
            self.logger.error(f"Failed to list schedules for plan {plan_id}: {e}")
            raise

    async def update_schedule_status(self, schedule_id, status: str) -> Optional[AnySchedule]:
        validated_status = self._validate_enum(status, self.VALID_STATUSES, "schedule_status")
        schedule_uuid = self._ensure_uuid(schedule_id)

        self.logger.info(f"Updating schedule {schedule_uuid}: status={validated_status}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                async with connection.transaction():
                    row = await connection.fetchrow(
                        f"""UPDATE schedules
                        SET metadata = jsonb_set(metadata, '{{status}}', to_jsonb($2::text)), updated_at = NOW()
                        WHERE id = $1 RETURNING {SCHEDULE_COLUMNS}""",
                        schedule_uuid, validated_status
                    )
                    log_database_query("UPDATE", "schedules", (time.time() - started) * 1000)
                    if not row:
                        self.logger.warning(f"No schedule found with ID: {schedule_uuid}")
                        return None
                    return self.row_to_schedule(row)
        except Exception as e:
            self.logger.error(f"Failed to update schedule {schedule_id}: {e}")
            raise

    async def delete_schedule(self, schedule_id) -> bool:
        schedule_uuid = self._ensure_uuid(schedule_id)
        self.logger.info(f"Deleting schedule: {schedule_uuid}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                async with connection.transaction():
                    result = await connection.execute(
                        "DELETE FROM schedules WHERE id = $1",
                        schedule_uuid
                    )
                    log_database_query("DELETE", "schedules", (time.time() - started) * 1000)
                    if result == "DELETE 0":
                        self.logger.warning(f"No schedule found with ID: {schedule_uuid}")
                        return False
                    return True
        except Exception as e:
            self.logger.error(f"Failed to delete schedule {schedule_id}: {e}")
            raise
