from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class StudyResource(BaseModel):
    name: str = Field(..., min_length=1, description="Resource title, e.g. a book or course")
    type: str = Field(..., min_length=1, description="Resource kind, e.g. 'book', 'video'")


class StudySession(BaseModel):
    """Planned study session recorded by the user against a plan"""
    id: Optional[int] = None
    day: str = Field(..., description="Day label or number the session belongs to")
    topics: List[str] = Field(default_factory=list)
    completed: bool = False
    resources: List[StudyResource] = Field(default_factory=list)

    @field_validator("day", mode="before")
    @classmethod
    def day_as_text(cls, v):
        if isinstance(v, int):
            return str(v)
        return v


class StudyPlan(BaseModel):
    id: int = Field(..., description="Study plan ID")
    user_id: str = Field(..., description="Owner of the plan")
    exam: str = Field(..., description="Exam being prepared for")
    study_duration: str = Field(..., description="Free-text duration, e.g. '3 months'")
    daily_hours: int = Field(..., description="Hours of study per day")
    subjects: List[str] = Field(default_factory=list, description="Subjects in study order")
    optionals: List[str] = Field(default_factory=list, description="Optional subjects")
    study_style: List[str] = Field(default_factory=list, description="Study style tags, e.g. 'Practice-oriented'")
    number_of_attempts: int = Field(default=1, description="Number of exam attempts")
    preferences: dict = Field(default_factory=dict, description="Scheduling preferences such as start_time ('HH:MM')")
    study_sessions: List[StudySession] = Field(default_factory=list, description="Sessions with their resources")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StudyPlanCreateRequest(BaseModel):
    user_id: str = Field(..., description="Owner of the plan")
    exam: str = Field(..., min_length=1, description="Exam being prepared for")
    study_duration: str = Field(..., min_length=1, description="Free-text duration, e.g. '3 months'")
    daily_hours: int = Field(..., gt=0, le=24, description="Hours of study per day")
    subjects: List[str] = Field(..., min_length=1, description="Subjects in study order")
    optionals: List[str] = Field(default_factory=list)
    study_style: List[str] = Field(default_factory=list)
    number_of_attempts: int = Field(default=1, ge=1)
    preferences: dict = Field(default_factory=dict)
    study_sessions: List[StudySession] = Field(default_factory=list)


class StudyPlanUpdateRequest(BaseModel):
    exam: Optional[str] = Field(None, min_length=1)
    study_duration: Optional[str] = Field(None, min_length=1)
    daily_hours: Optional[int] = Field(None, gt=0, le=24)
    subjects: Optional[List[str]] = Field(None, min_length=1)
    optionals: Optional[List[str]] = None
    study_style: Optional[List[str]] = None
    number_of_attempts: Optional[int] = Field(None, ge=1)
    preferences: Optional[dict] = None
    study_sessions: Optional[List[StudySession]] = Field(
        None, description="Replaces every existing session of the plan when given"
    )
