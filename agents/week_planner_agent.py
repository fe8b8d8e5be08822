import logging
from collections.abc import Mapping
from datetime import date
from typing import Dict, Optional, Union

from agents.day_planner_agent import HOURS_PER_SESSION, normalize_study_plan
from agents.schedule_content_agent import ScheduleContentAgent
from models.plan_models import StudyPlan
from models.schedule_models import DayKind, WeekArchetype, WeekdayPlan, WeekMetadata, WeekPlan
from utils.errors import InvalidInputError
from utils.time_utils import week_date_range, weekly_breaks_template


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
REVISION_EVERY_N_WEEKS = 4


def determine_week_archetype(week_number: int, total_weeks: int) -> WeekArchetype:
    """First matching rule wins: first, last, every 4th, even, otherwise core"""
    if week_number == 1:
        return WeekArchetype.FOUNDATION
    if week_number == total_weeks:
        return WeekArchetype.FINAL_REVISION
    if week_number % REVISION_EVERY_N_WEEKS == 0:
        return WeekArchetype.REVISION
    if week_number % 2 == 0:
        return WeekArchetype.PRACTICE
    return WeekArchetype.CORE_CONCEPTS


def build_week_metadata(plan: StudyPlan, week_number: int, total_weeks: int,
                        today: Optional[date] = None) -> WeekMetadata:
    start_date, end_date = week_date_range(week_number, today)
    return WeekMetadata(
        current_week=week_number,
        total_weeks=total_weeks,
        week_progress=week_number / total_weeks * 100,
        weekly_hours=plan.daily_hours * 7,
        start_date=start_date,
        end_date=end_date,
        is_revision_week=week_number % REVISION_EVERY_N_WEEKS == 0,
        week_archetype=determine_week_archetype(week_number, total_weeks),
    )


def layout_weekdays(subjects: list[str], daily_hours: int) -> Dict[str, WeekdayPlan]:
    """Spread subjects over the week without asking the model.

    Monday to Friday continue one subject rotation, Saturday practises the
    next slice of it and Sunday revises every subject.
    """
    per_day = max(daily_hours // HOURS_PER_SESSION, 1)
    days = {}
    position = 0

    for day in WEEKDAYS[:6]:
        day_subjects = [subjects[(position + k) % len(subjects)] for k in range(per_day)]
        position += per_day
        if day == "saturday":
            kind, focus = DayKind.PRACTICE, f"Practice: {', '.join(dict.fromkeys(day_subjects))}"
        else:
            kind, focus = DayKind.STUDY, f"Study: {', '.join(dict.fromkeys(day_subjects))}"
        days[day] = WeekdayPlan(day=day.upper(), kind=kind, focus=focus, subjects=day_subjects)

    days["sunday"] = WeekdayPlan(
        day="SUNDAY",
        kind=DayKind.REVISION,
        focus="Weekly revision",
        subjects=list(subjects),
    )
    return days


class WeekPlannerAgent:
    def __init__(self, content_agent: ScheduleContentAgent):
        self.content_agent = content_agent
        self.logger = logging.getLogger(self.__class__.__name__)

    def _validate(self, plan: Union[StudyPlan, Mapping, None], week_number: int, total_weeks: int) -> StudyPlan:
        normalized = normalize_study_plan(plan).unwrap()
        if not normalized.id or not normalized.user_id:
            raise InvalidInputError("Invalid study plan: missing required fields")
        if not normalized.subjects:
            raise InvalidInputError("Invalid study plan: subjects are required")
        if not week_number or not total_weeks or not 1 <= week_number <= total_weeks:
            raise InvalidInputError(f"Invalid week parameters: week {week_number} of {total_weeks}")
        return normalized

    async def compose_week(self, plan: Union[StudyPlan, Mapping], week_number: int, total_weeks: int,
                           today: Optional[date] = None) -> WeekPlan:
        """
        Builds the focus, targets, weekday layout and metadata for one week.

        Week content comes from the content agent and falls back on failure;
        everything else is computed locally.
        """
        normalized = self._validate(plan, week_number, total_weeks)
        self.logger.info(f"Composing week {week_number}/{total_weeks} for plan {normalized.id}")

        content = (await self.content_agent.week_content_for(normalized, week_number, total_weeks)).unwrap()

        return WeekPlan(
            week_number=week_number,
            total_weeks=total_weeks,
            focus=content.focus,
            days=layout_weekdays(normalized.subjects, normalized.daily_hours),
            weekly_targets=content.weekly_targets,
            weekly_tests=content.weekly_tests,
            breaks=weekly_breaks_template(),
            metadata=build_week_metadata(normalized, week_number, total_weeks, today),
        )
