# school_scheduler/api/v1/api.py
from fastapi import APIRouter

# --- Import các routers chức năng ---
from school_scheduler.api.v1.endpoints.class_route import router as class_router
from school_scheduler.api.v1.endpoints.schedule_route import router as schedule_router
from school_scheduler.api.v1.endpoints.attendance_route import router as attendance_router
from school_scheduler.api.v1.endpoints.makeup_route import router as makeup_router
from school_scheduler.api.v1.endpoints.holiday_route import router as holiday_router
from school_scheduler.api.v1.endpoints.availability_route import router as availability_router
from school_scheduler.api.v1.endpoints.settings_route import router as settings_router

api_router = APIRouter()

# --- Bao gồm các routers vào router chính ---
api_router.include_router(class_router, prefix="/classes", tags=["Classes"])
api_router.include_router(schedule_router, prefix="/schedules", tags=["Schedules"])
api_router.include_router(attendance_router, prefix="/attendances", tags=["Attendances"])
api_router.include_router(makeup_router, prefix="/makeups", tags=["Makeup Classes"])
api_router.include_router(holiday_router, prefix="/holidays", tags=["Holidays"])
api_router.include_router(availability_router, prefix="/availability", tags=["Availability"])
api_router.include_router(settings_router, prefix="/settings", tags=["Settings"])
