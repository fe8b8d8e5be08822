from pydantic import BaseModel, Field
from typing import List, Optional, Union

from models.plan_models import StudyPlan
from models.schedule_models import DaySchedule, ScheduleStatus, WeekSchedule


class DayScheduleRequest(BaseModel):
    day_number: int = Field(..., ge=1, description="1-based day to generate")
    total_days: Optional[int] = Field(None, ge=1, description="Days in the plan; derived from study_duration when omitted")


class WeekScheduleRequest(BaseModel):
    week_number: int = Field(..., ge=1, description="1-based week to generate")
    total_weeks: Optional[int] = Field(None, ge=1, description="Weeks in the plan; derived from study_duration when omitted")


class ScheduleStatusUpdateRequest(BaseModel):
    status: ScheduleStatus = Field(..., description="PENDING, IN_PROGRESS or COMPLETED")


class StudyPlansResponse(BaseModel):
    plans: List[StudyPlan]
    total_count: int


class SchedulesResponse(BaseModel):
    schedules: List[Union[DaySchedule, WeekSchedule]]
    total_count: int


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    ai_stats: dict
