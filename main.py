# main.py
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler # type: ignore
from apscheduler.triggers.cron import CronTrigger # type: ignore
from fastapi.middleware.cors import CORSMiddleware
from school_scheduler.api.v1.api import api_router
from school_scheduler.config import CORS_ORIGINS, REMINDER_SWEEP_HOUR, STATUS_SWEEP_HOUR
from school_scheduler.database import Base, engine, SessionLocal
from school_scheduler.exceptions import SchedulingError
from school_scheduler.models import *
from school_scheduler.services import class_service, notification_service
import logging

# Cấu hình logging cho APScheduler
logging.basicConfig(level=logging.INFO)
logging.getLogger('apscheduler').setLevel(logging.INFO)
logger = logging.getLogger(__name__)

# Tạo scheduler
scheduler = AsyncIOScheduler()

# Các hàm tác vụ sẽ được lập lịch
async def run_class_status_sweep():
    """published -> started, started -> completed theo ngày."""
    db = SessionLocal()
    try:
        result = class_service.update_class_statuses(db)
        logger.info("Class status sweep finished: %d updated, %d errors", result.processed_count, len(result.errors))
    except Exception:
        logger.exception("Class status sweep failed")
    finally:
        db.close()


async def run_reminder_sweep():
    """Nhắc lịch học / học bù của ngày mai."""
    db = SessionLocal()
    try:
        summary = notification_service.send_tomorrow_reminders(db)
        logger.info("Reminder sweep finished: %s", summary)
    except Exception:
        logger.exception("Reminder sweep failed")
    finally:
        db.close()

# Hàm lifespan event handler
@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler.add_job(
        run_class_status_sweep,
        trigger=CronTrigger(hour=STATUS_SWEEP_HOUR, minute=5),
        id="class_status_job",
        name="Update Class Statuses"
    )
    scheduler.add_job(
        run_reminder_sweep,
        trigger=CronTrigger(hour=REMINDER_SWEEP_HOUR, minute=0),
        id="reminder_job",
        name="Send Tomorrow Reminders"
    )
    scheduler.start()
    logger.info("Scheduler đã được khởi động.")

    # Tạo tất cả các bảng trong cơ sở dữ liệu
    Base.metadata.create_all(bind=engine)

    yield # Điểm này ứng dụng sẽ chạy

    scheduler.shutdown()
    logger.info("Scheduler đã tắt.")

# Khởi tạo ứng dụng FastAPI với lifespan handler
app = FastAPI(
    title="School Scheduler API",
    description="API lập lịch lớp học và quản lý học bù.",
    version="1.0.0",
    lifespan=lifespan
)

# Cấu hình CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Chuyển lỗi nghiệp vụ thành HTTP response với chi tiết có cấu trúc."""
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder({"detail": exc.to_dict()}))


# Bao gồm router chính của API v1
app.include_router(api_router, prefix="/api/v1")

@app.get("/")
def read_root():
    return {"message": "Welcome to the School Scheduler API! Visit /docs for API documentation."}
