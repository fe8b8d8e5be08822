import logging
import json
import time
from typing import Dict, Optional, List
from asyncpg import Pool

from models.plan_models import StudyPlan, StudyPlanCreateRequest, StudyPlanUpdateRequest, StudySession
from utils.logging import log_database_query


PLAN_COLUMNS = (
    "id, user_id, exam, study_duration, daily_hours, subjects, optionals, "
    "study_style, number_of_attempts, preferences, created_at, updated_at"
)

# One row per session with its resources aggregated into a JSON array
STUDY_SESSIONS_QUERY = """
    SELECT s.id, s.study_plan_id, s.day, s.topics, s.completed,
           COALESCE(
               json_agg(json_build_object('name', r.name, 'type', r.type) ORDER BY r.id)
               FILTER (WHERE r.id IS NOT NULL),
               '[]'
           ) AS resources
    FROM study_sessions s
    LEFT JOIN resources r ON r.study_session_id = s.id
    WHERE s.study_plan_id = ANY($1::int[])
    GROUP BY s.id
    ORDER BY s.study_plan_id, s.id
"""


class StudyPlanRepository:
    def __init__(self, db_pool: Pool):
        self.pool = db_pool
        self.logger = logging.getLogger(self.__class__.__name__)
        self.logger.info("StudyPlanRepository initialized")

    def _serialize_json(self, data) -> str:
        """Serialize data to JSON string for JSONB columns"""
        if data is None:
            return "{}"
        if isinstance(data, str):
            return data
        return json.dumps(data)

    def _deserialize_json(self, json_str):
        """Deserialize JSON string back to Python object"""
        if json_str is None:
            return {}
        if isinstance(json_str, (dict, list)):
            return json_str
        try:
            return json.loads(json_str)
        except json.JSONDecodeError:
            return {}

    def _row_to_plan(self, row, study_sessions: Optional[List[StudySession]] = None) -> StudyPlan:
        data = dict(row)
        data["preferences"] = self._deserialize_json(data.get("preferences"))
        data["study_sessions"] = study_sessions or []
        return StudyPlan.model_validate(data)

    def _row_to_study_session(self, row) -> StudySession:
        data = dict(row)
        data["resources"] = self._deserialize_json(data.get("resources")) or []
        return StudySession.model_validate(data)

    async def _fetch_study_sessions(self, connection, plan_ids: List[int]) -> Dict[int, List[StudySession]]:
        started = time.time()
        rows = await connection.fetch(STUDY_SESSIONS_QUERY, plan_ids)
        log_database_query("SELECT", "study_sessions", (time.time() - started) * 1000)

        sessions_by_plan: Dict[int, List[StudySession]] = {}
        for row in rows:
            sessions_by_plan.setdefault(row["study_plan_id"], []).append(self._row_to_study_session(row))
        return sessions_by_plan

    async def _insert_study_sessions(self, connection, plan_id: int, sessions: List[StudySession]) -> None:
        """Insert sessions and their resources; the caller owns the transaction"""
        started = time.time()
        for session in sessions:
            session_id = await connection.fetchval(
                """INSERT INTO study_sessions (study_plan_id, day, topics, completed)
                VALUES ($1, $2, $3, $4) RETURNING id""",
                plan_id, session.day, session.topics, session.completed
            )
            if session.resources:
                await connection.executemany(
                    "INSERT INTO resources (study_session_id, name, type) VALUES ($1, $2, $3)",
                    [(session_id, resource.name, resource.type) for resource in session.resources]
                )
        log_database_query("INSERT", "study_sessions", (time.time() - started) * 1000)

    async def create_plan(self, plan: StudyPlanCreateRequest) -> StudyPlan:
        self.logger.info(f"Creating study plan for user {plan.user_id}: exam={plan.exam}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                async with connection.transaction():
                    row = await connection.fetchrow(
                        f"""INSERT INTO study_plans
                        (user_id, exam, study_duration, daily_hours, subjects, optionals, study_style, number_of_attempts, preferences)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9) RETURNING {PLAN_COLUMNS}""",
                        plan.user_id,
                        plan.exam,
                        plan.study_duration,
                        plan.daily_hours,
                        plan.subjects,
                        plan.optionals,
                        plan.study_style,
                        plan.number_of_attempts,
                        self._serialize_json(plan.preferences)
                    )
                    log_database_query("INSERT", "study_plans", (time.time() - started) * 1000, plan.user_id)

                    sessions = {}
                    if plan.study_sessions:
                        await self._insert_study_sessions(connection, row["id"], plan.study_sessions)
                        sessions = await self._fetch_study_sessions(connection, [row["id"]])

                    created = self._row_to_plan(row, sessions.get(row["id"]))
                    self.logger.info(f"Study plan created: {created.id} ({len(created.study_sessions)} sessions)")
                    return created
        except Exception as e:
            self.logger.error(f"Failed to create study plan for user {plan.user_id}: {e}")
            raise

    async def get_plan(self, plan_id: int) -> Optional[StudyPlan]:
        self.logger.debug(f"Fetching study plan: {plan_id}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                row = await connection.fetchrow(
                    f"SELECT {PLAN_COLUMNS} FROM study_plans WHERE id = $1",
                    plan_id
                )
                log_database_query("SELECT", "study_plans", (time.time() - started) * 1000)
                if not row:
                    self.logger.debug(f"No study plan found with ID: {plan_id}")
                    return None
                sessions = await self._fetch_study_sessions(connection, [plan_id])
                return self._row_to_plan(row, sessions.get(plan_id))
        except Exception as e:
            self.logger.error(f"Failed to fetch study plan {plan_id}: {e}")
            raise

    async def list_plans(self, user_id: Optional[str] = None) -> List[StudyPlan]:
        self.logger.debug(f"Fetching study plans (user_id={user_id})")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                if user_id:
                    rows = await connection.fetch(
                        f"SELECT {PLAN_COLUMNS} FROM study_plans WHERE user_id = $1 ORDER BY created_at DESC",
                        user_id
                    )
                else:
                    rows = await connection.fetch(
                        f"SELECT {PLAN_COLUMNS} FROM study_plans ORDER BY created_at DESC"
                    )
                log_database_query("SELECT", "study_plans", (time.time() - started) * 1000, user_id)
                if not rows:
                    return []
                sessions = await self._fetch_study_sessions(connection, [row["id"] for row in rows])
                return [self._row_to_plan(row, sessions.get(row["id"])) for row in rows]
        except Exception as e:
            self.logger.error(f"Failed to list study plans: {e}")
            raise

    async def update_plan(self, plan_id: int, changes: StudyPlanUpdateRequest) -> Optional[StudyPlan]:
        updates = changes.model_dump(exclude_unset=True, exclude_none=True, exclude={"study_sessions"})
        replace_sessions = changes.study_sessions is not None
        if not updates and not replace_sessions:
            return await self.get_plan(plan_id)

        self.logger.info(
            f"Updating study plan {plan_id}: fields={sorted(updates)}, replace_sessions={replace_sessions}"
        )
        if "preferences" in updates:
            updates["preferences"] = self._serialize_json(updates["preferences"])

        # Build dynamic SET clause from the update model's field names
        assignments = []
        params = []
        for param_counter, (column, value) in enumerate(updates.items(), start=1):
            assignments.append(f"{column} = ${param_counter}")
            params.append(value)
        assignments.append("updated_at = NOW()")
        params.append(plan_id)

        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                async with connection.transaction():
                    row = await connection.fetchrow(
                        f"""UPDATE study_plans SET {', '.join(assignments)}
                        WHERE id = ${len(params)} RETURNING {PLAN_COLUMNS}""",
                        *params
                    )
                    log_database_query("UPDATE", "study_plans", (time.time() - started) * 1000)
                    if not row:
                        self.logger.warning(f"No study plan found with ID: {plan_id}")
                        return None

                    if replace_sessions:
                        await connection.execute("DELETE FROM study_sessions WHERE study_plan_id = $1", plan_id)
                        await self._insert_study_sessions(connection, plan_id, changes.study_sessions)

                    sessions = await self._fetch_study_sessions(connection, [plan_id])
                    return self._row_to_plan(row, sessions.get(plan_id))
        except Exception as e:
            self.logger.error(f"Failed to update study plan {plan_id}: {e}")
            raise

    async def delete_plan(self, plan_id: int) -> bool:
        """Delete a plan and, through the foreign keys, its sessions, resources and schedules"""
        self.logger.info(f"Deleting study plan: {plan_id}")
        started = time.time()
        try:
            async with self.pool.acquire() as connection:
                async with connection.transaction():
                    result = await connection.execute(
                        "DELETE FROM study_plans WHERE id = $1",
                        plan_id
                    )
                    log_database_query("DELETE", "study_plans", (time.time() - started) * 1000)
                    if result == "DELETE 0":
                        self.logger.warning(f"No study plan found with ID: {plan_id}")
                        return False
                    self.logger.info(f"Successfully deleted study plan {plan_id}")
                    return True
        except Exception as e:
            self.logger.error(f"Failed to delete study plan {plan_id}: {e}")
            raise
