import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class TopicType(str, Enum):
    NEW = "NEW"
    REVISION = "REVISION"
    PRACTICE = "PRACTICE"


class BreakType(str, Enum):
    SHORT = "SHORT"
    LUNCH = "LUNCH"
    LONG = "LONG"
    RECREATION = "RECREATION"


class ScheduleType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class ScheduleStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class WeekArchetype(str, Enum):
    FOUNDATION = "FOUNDATION"
    CORE_CONCEPTS = "CORE_CONCEPTS"
    PRACTICE = "PRACTICE"
    REVISION = "REVISION"
    FINAL_REVISION = "FINAL_REVISION"


class DayKind(str, Enum):
    STUDY = "STUDY"
    PRACTICE = "PRACTICE"
    REVISION = "REVISION"


_MINUTES_PATTERN = re.compile(
    r"(?<![\d.])(\d+(?:\.\d+)?)(?![\d.])\s*"
    r"(hours|hour|hrs|hr|h|minutes|minute|mins|min|m)?(?![a-z])",
    re.IGNORECASE,
)


class Topic(BaseModel):
    name: str = Field(..., description="Topic name")
    type: TopicType = Field(..., description="NEW, REVISION or PRACTICE")
    difficulty: int = Field(..., ge=1, le=5, description="Difficulty from 1 (easy) to 5 (hard)")
    duration_minutes: Optional[int] = Field(None, ge=1, description="Recommended minutes for this topic")
    prerequisites: Optional[List[str]] = Field(None, description="Topics to know beforehand")
    resources: Optional[List[str]] = Field(None, description="Suggested resources")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("difficulty", mode="before")
    @classmethod
    def round_difficulty(cls, v):
        # models answer NUMBER fields with floats such as 3.0
        if isinstance(v, float):
            return int(round(v))
        return v

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def parse_duration(cls, v):
        # zero, negative or unreadable durations count as absent
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            minutes = int(round(v))
        elif isinstance(v, str):
            matches = _MINUTES_PATTERN.findall(v)
            if not matches:
                return None
            minutes = int(round(sum(
                float(amount) * (60 if unit.lower().startswith("h") else 1)
                for amount, unit in matches
            )))
        else:
            return v
        return minutes if minutes > 0 else None


class TopicSuggestions(BaseModel):
    topics: List[Topic] = Field(..., description="Topics to study in this session, in order.")


class Session(BaseModel):
    start_time: str = Field(..., description="12-hour start time, e.g. '9:00 AM'")
    subject: str
    topics: List[Topic]
    type: str = "STUDY"
    duration: str = Field(..., description="Realized duration, e.g. '120min'")
    recommended_pace: str


class Break(BaseModel):
    start_time: str
    duration: str
    type: BreakType


class DayPlan(BaseModel):
    focus: str
    sessions: List[Session]
    breaks: List[Break]
    daily_targets: List[str]


class DayMetadata(BaseModel):
    current_day: int
    total_days: int
    progress: float
    daily_hours: int
    status: ScheduleStatus = ScheduleStatus.PENDING


class DaySchedule(DayPlan):
    id: str
    study_plan_id: int
    user_id: str
    day_number: int
    metadata: DayMetadata
    created_at: Optional[datetime] = None

    def to_day_plan(self) -> DayPlan:
        return DayPlan.model_validate(self.model_dump(include=set(DayPlan.model_fields)))


class WeekContent(BaseModel):
    focus: str = Field(..., description="Weekly focus area")
    weekly_targets: List[str] = Field(..., description="Targets to reach by the end of the week")
    weekly_tests: List[str] = Field(default_factory=list, description="Tests or assessments for the week")


class WeekdayPlan(BaseModel):
    day: str
    kind: DayKind
    focus: str
    subjects: List[str]


class WeeklyBreaks(BaseModel):
    daily_breaks: List[Break]
    weekend_breaks: List[Break]


class WeekMetadata(BaseModel):
    current_week: int
    total_weeks: int
    week_progress: float
    weekly_hours: int
    start_date: str
    end_date: str
    status: ScheduleStatus = ScheduleStatus.PENDING
    is_revision_week: bool
    week_archetype: WeekArchetype


class WeekPlan(BaseModel):
    week_number: int
    total_weeks: int
    focus: str
    days: Dict[str, WeekdayPlan]
    weekly_targets: List[str]
    weekly_tests: List[str] = Field(default_factory=list)
    breaks: WeeklyBreaks
    metadata: WeekMetadata


class WeekSchedule(WeekPlan):
    id: str
    study_plan_id: int
    user_id: str
    created_at: Optional[datetime] = None

    def to_week_plan(self) -> WeekPlan:
        return WeekPlan.model_validate(self.model_dump(include=set(WeekPlan.model_fields)))
