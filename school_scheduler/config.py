from dotenv import load_dotenv
import os


load_dotenv(dotenv_path="credentials.env")

POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.getenv("POSTGRES_DB", "school_scheduler")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

# Cho phép ghi đè toàn bộ URL (vd: sqlite khi chạy local)
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+psycopg2://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost,http://localhost:3000").split(",")
    if origin.strip()
]

# Thời gian cache cấu hình makeup (giây)
POLICY_CACHE_TTL_SECONDS = int(os.getenv("POLICY_CACHE_TTL_SECONDS", "300"))

# Số ngày tối đa quét khi sinh lịch học, tránh vòng lặp vô hạn
GENERATION_HORIZON_DAYS = int(os.getenv("GENERATION_HORIZON_DAYS", "730"))

# Số ngày tìm ngày trống khi dời lịch vì ngày nghỉ
HOLIDAY_RESCHEDULE_WINDOW_DAYS = int(os.getenv("HOLIDAY_RESCHEDULE_WINDOW_DAYS", "92"))

# Giờ chạy các tác vụ định kỳ
STATUS_SWEEP_HOUR = int(os.getenv("STATUS_SWEEP_HOUR", "0"))
REMINDER_SWEEP_HOUR = int(os.getenv("REMINDER_SWEEP_HOUR", "18"))
