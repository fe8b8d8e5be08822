import logging
import math
import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Request, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from asyncpg.pool import Pool
from typing import Optional

from utils.config import AppConfig
from utils.errors import InvalidInputError, NotFoundError
from utils.logging import get_ai_stats
from utils.request_middleware import RequestLoggingMiddleware, PerformanceLoggingMiddleware
from utils.time_utils import parse_study_duration_days

from db.postgres_client import get_db_pool, init_schema
from db.study_plan_repository import StudyPlanRepository
from db.schedule_repository import ScheduleRepository

from agents.schedule_content_agent import ScheduleContentAgent
from agents.day_planner_agent import DayPlannerAgent
from agents.week_planner_agent import WeekPlannerAgent
from services.schedule_service import ScheduleService

from models.plan_models import StudyPlan, StudyPlanCreateRequest, StudyPlanUpdateRequest
from models.schedule_models import DaySchedule, WeekSchedule
from models.api_models import (
    DayScheduleRequest, WeekScheduleRequest, ScheduleStatusUpdateRequest,
    StudyPlansResponse, SchedulesResponse, MessageResponse, HealthResponse
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        db_pool: Pool = await get_db_pool()
        await init_schema(db_pool)
        app.state.db_pool = db_pool
        app.state.plan_repo = StudyPlanRepository(db_pool)

        content_agent = ScheduleContentAgent.from_model_name(AppConfig.LLM_MODEL, AppConfig.LLM_TEMPERATURE)
        app.state.schedule_service = ScheduleService(
            day_planner=DayPlannerAgent(content_agent),
            week_planner=WeekPlannerAgent(content_agent),
            schedule_repo=ScheduleRepository(db_pool),
        )
        logger.info(f"Database pool, repositories and schedule service initialized (model: {AppConfig.LLM_MODEL})")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    try:
        await app.state.db_pool.close()
        logger.info("Database pool closed")
    except Exception as e:
        logger.error(f"Shutdown cleanup failed: {e}")


app = FastAPI(
    title="Exam Prep Scheduler API",
    description="Study plans with AI-generated daily and weekly schedules",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(PerformanceLoggingMiddleware, slow_request_threshold_ms=AppConfig.SLOW_REQUEST_THRESHOLD_MS)
app.add_middleware(RequestLoggingMiddleware, log_periodic_stats_interval=AppConfig.STATS_LOG_INTERVAL_S)

app.add_middleware(
    CORSMiddleware,
    allow_origins=AppConfig.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_plan_repo(request: Request) -> StudyPlanRepository:
    return request.app.state.plan_repo

def get_schedule_service(request: Request) -> ScheduleService:
    return request.app.state.schedule_service


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def load_plan(plan_id: int, repo: StudyPlanRepository) -> StudyPlan:
    plan = await repo.get_plan(plan_id)
    if not plan:
        raise NotFoundError(f"Study plan with id {plan_id} not found")
    return plan


def total_days_for(plan: StudyPlan, requested: Optional[int]) -> int:
    total_days = requested or parse_study_duration_days(plan.study_duration)
    if not total_days:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot derive total days from study duration '{plan.study_duration}'; pass it explicitly"
        )
    return total_days


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="healthy", ai_stats=get_ai_stats())


@app.post("/study-plans", response_model=StudyPlan, status_code=status.HTTP_201_CREATED)
async def create_study_plan(
    request: StudyPlanCreateRequest,
    repo: StudyPlanRepository = Depends(get_plan_repo)
):
    plan = await repo.create_plan(request)
    logger.info(f"Study plan generated: {plan.id}")
    return plan

@app.get("/study-plans", response_model=StudyPlansResponse)
async def list_study_plans(
    user_id: Optional[str] = Query(None, description="Only plans owned by this user"),
    repo: StudyPlanRepository = Depends(get_plan_repo)
):
    plans = await repo.list_plans(user_id)
    return StudyPlansResponse(plans=plans, total_count=len(plans))

@app.get("/study-plans/{plan_id}", response_model=StudyPlan)
async def get_study_plan(
    plan_id: int,
    repo: StudyPlanRepository = Depends(get_plan_repo)
):
    return await load_plan(plan_id, repo)

@app.patch("/study-plans/{plan_id}", response_model=StudyPlan)
async def update_study_plan(
    plan_id: int,
    request: StudyPlanUpdateRequest,
    repo: StudyPlanRepository = Depends(get_plan_repo)
):
    plan = await repo.update_plan(plan_id, request)
    if not plan:
        raise HTTPException(status_code=404, detail=f"Study plan with id {plan_id} not found")
    return plan

@app.delete("/study-plans/{plan_id}", response_model=MessageResponse)
async def delete_study_plan(
    plan_id: int,
    repo: StudyPlanRepository = Depends(get_plan_repo)
):
    if not await repo.delete_plan(plan_id):
        raise HTTPException(status_code=404, detail=f"Study plan with id {plan_id} not found")
    return MessageResponse(message="Study plan deleted")


@app.post("/study-plans/{plan_id}/schedules/day", response_model=DaySchedule, status_code=status.HTTP_201_CREATED)
async def generate_day_schedule(
    plan_id: int,
    request: DayScheduleRequest,
    repo: StudyPlanRepository = Depends(get_plan_repo),
    service: ScheduleService = Depends(get_schedule_service)
):
    plan = await load_plan(plan_id, repo)
    total_days = total_days_for(plan, request.total_days)

    try:
        return await service.generate_day_schedule(plan, request.day_number, total_days)
    except InvalidInputError as e:
        logger.error(f"Day schedule rejected for plan {plan_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/study-plans/{plan_id}/schedules/week", response_model=WeekSchedule, status_code=status.HTTP_201_CREATED)
async def generate_week_schedule(
    plan_id: int,
    request: WeekScheduleRequest,
    repo: StudyPlanRepository = Depends(get_plan_repo),
    service: ScheduleService = Depends(get_schedule_service)
):
    plan = await load_plan(plan_id, repo)
    total_weeks = request.total_weeks or math.ceil(total_days_for(plan, None) / 7)

    try:
        return await service.generate_week_schedule(plan, request.week_number, total_weeks)
    except InvalidInputError as e:
        logger.error(f"Week schedule rejected for plan {plan_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/study-plans/{plan_id}/schedules", response_model=SchedulesResponse)
async def list_plan_schedules(
    plan_id: int,
    repo: StudyPlanRepository = Depends(get_plan_repo),
    service: ScheduleService = Depends(get_schedule_service)
):
    await load_plan(plan_id, repo)
    schedules = await service.list_schedules(plan_id)
    return SchedulesResponse(schedules=schedules, total_count=len(schedules))

@app.get("/study-plans/{plan_id}/schedules/day/{day_number}", response_model=DaySchedule)
async def get_day_schedule(
    plan_id: int,
    day_number: int,
    service: ScheduleService = Depends(get_schedule_service)
):
    schedule = await service.get_latest_day_schedule(plan_id, day_number)
    if not schedule:
        raise HTTPException(status_code=404, detail=f"No schedule for day {day_number} of plan {plan_id}")
    return schedule

@app.get("/study-plans/{plan_id}/schedules/week/{week_number}", response_model=WeekSchedule)
async def get_week_schedule(
    plan_id: int,
    week_number: int,
    service: ScheduleService = Depends(get_schedule_service)
):
    schedule = await service.get_latest_week_schedule(plan_id, week_number)
    if not schedule:
        raise HTTPException(status_code=404, detail=f"No schedule for week {week_number} of plan {plan_id}")
    return schedule


@app.get("/schedules/{schedule_id}")
async def get_schedule(
    schedule_id: str,
    service: ScheduleService = Depends(get_schedule_service)
):
    try:
        schedule = await service.get_schedule(schedule_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid schedule ID format")
    if not schedule:
        raise HTTPException(status_code=404, detail=f"Schedule with id {schedule_id} not found")
    return schedule

@app.patch("/schedules/{schedule_id}/status")
async def update_schedule_status(
    schedule_id: str,
    request: ScheduleStatusUpdateRequest,
    service: ScheduleService = Depends(get_schedule_service)
):
    try:
        schedule = await service.update_schedule_status(schedule_id, request.status)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid schedule ID format")
    if not schedule:
        raise HTTPException(status_code=404, detail=f"Schedule with id {schedule_id} not found")
    return schedule

@app.delete("/schedules/{schedule_id}", response_model=MessageResponse)
async def delete_schedule(
    schedule_id: str,
    service: ScheduleService = Depends(get_schedule_service)
):
    try:
        deleted = await service.delete_schedule(schedule_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid schedule ID format")
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Schedule with id {schedule_id} not found")
    return MessageResponse(message="Schedule deleted")


@app.get("/")
async def root():
    return {
        "message": "Exam Prep Scheduler API",
        "version": "1.0.0",
        "docs": "/docs",
        "openapi": "/openapi.json"
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run("schedule_server.main:app", host="0.0.0.0", port=8000, reload=True)
