import asyncio
import logging
from collections.abc import Mapping
from typing import Union

from pydantic import ValidationError

from agents.schedule_content_agent import ScheduleContentAgent
from models.plan_models import StudyPlan
from models.schedule_models import DayPlan, Session
from utils.errors import InvalidInputError
from utils.result import Ok, Fatal
from utils.time_utils import average_session_minutes, compute_start_time, layout_breaks, layout_sessions


HOURS_PER_SESSION = 2


def normalize_study_plan(raw: Union[StudyPlan, Mapping, None]):
    """Coerce a stored or submitted plan into a StudyPlan.

    Returns ``Ok(plan)`` or ``Fatal(InvalidInputError)``. Missing preferences
    and subjects default to empty; daily hours must be a positive integer.
    """
    if raw is None:
        return Fatal(InvalidInputError("Invalid study plan: plan is required"))

    data = raw.model_dump() if isinstance(raw, StudyPlan) else dict(raw)
    if data.get("preferences") is None:
        data["preferences"] = {}
    if not isinstance(data.get("subjects"), list):
        data["subjects"] = []

    try:
        plan = StudyPlan.model_validate(data)
    except ValidationError as e:
        return Fatal(InvalidInputError(f"Invalid study plan data: {e}"))

    if plan.daily_hours <= 0:
        return Fatal(InvalidInputError("Invalid study plan: daily_hours must be positive"))
    return Ok(plan)


class DayPlannerAgent:
    def __init__(self, content_agent: ScheduleContentAgent):
        """
        Initialize the Day Planner with the agent that supplies generated content.
        """
        self.content_agent = content_agent
        self.logger = logging.getLogger(self.__class__.__name__)

    async def compose_day(self, plan: Union[StudyPlan, Mapping], day_number: int) -> DayPlan:
        """
        Builds the sessions, breaks and targets for one day of a study plan.

        Args:
            plan: The study plan (model or mapping) to schedule
            day_number (int): 1-based day index

        Returns:
            DayPlan: focus, sessions, breaks and daily targets

        Raises:
            InvalidInputError: missing plan or day, no subjects, or fewer than
                two daily hours (no session fits)
        """
        if not plan or not day_number:
            raise InvalidInputError("Missing required parameters: plan and day_number")
        if day_number < 1:
            raise InvalidInputError(f"Invalid day number: {day_number}")

        normalized = normalize_study_plan(plan).unwrap()

        start_time = compute_start_time(normalized.preferences.get("start_time"))
        sessions_per_day = normalized.daily_hours // HOURS_PER_SESSION
        if sessions_per_day == 0:
            raise InvalidInputError(
                f"Cannot schedule a day with {normalized.daily_hours} daily hour(s); at least {HOURS_PER_SESSION} are required"
            )

        self.logger.info(
            f"Composing day {day_number} for plan {normalized.id}: "
            f"{sessions_per_day} sessions from {start_time}"
        )
        sessions = await self._compose_sessions(normalized, day_number, start_time, sessions_per_day)

        # Breaks only need the finished sessions; targets only need the plan
        breaks, targets = await asyncio.gather(
            self._layout_breaks(sessions),
            self.content_agent.daily_targets_for(normalized, day_number),
        )
        daily_targets = targets.unwrap()

        return DayPlan(
            focus=f"Day {day_number} Study: {normalized.subjects[0]}",
            sessions=sessions,
            breaks=breaks,
            daily_targets=daily_targets,
        )

    async def _compose_sessions(self, plan: StudyPlan, day_number: int,
                                start_time: str, sessions_count: int) -> list[Session]:
        subjects = plan.subjects
        if not subjects:
            raise InvalidInputError("Invalid study plan: subjects are required")

        average_minutes = average_session_minutes(plan.daily_hours, sessions_count)
        session_topics = []
        durations = []

        # Topics are requested one session at a time, in session order
        for i in range(sessions_count):
            subject = subjects[i % len(subjects)]
            topics = (await self.content_agent.topics_for(subject, day_number, plan)).unwrap()
            session_topics.append(topics)
            durations.append(sum(topic.duration_minutes or average_minutes for topic in topics))

        return [
            Session(
                start_time=slot.start_time,
                subject=subjects[slot.subject_index],
                topics=session_topics[slot.index],
                duration=f"{durations[slot.index]}min",
                recommended_pace=self.content_agent.pace_for(session_topics[slot.index]),
            )
            for slot in layout_sessions(start_time, durations, len(subjects))
        ]

    @staticmethod
    async def _layout_breaks(sessions: list[Session]):
        return layout_breaks(sessions)
