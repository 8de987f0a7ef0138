from school_scheduler.database import Base, engine
from school_scheduler.models import (
    class_model, schedule_model, attendance_model, holiday_model,
    makeup_model, setting_model, audit_log_model, notification_model
)
from sqlalchemy import text
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def recreate_database():
    logger.info("Đang xóa tất cả các bảng cơ sở dữ liệu...")

    # Xóa theo thứ tự ngược phụ thuộc: bảng con trước, bảng cha sau
    all_table_names = [table.name for table in reversed(Base.metadata.sorted_tables)]
    cascade = " CASCADE" if engine.dialect.name == "postgresql" else ""

    with engine.connect() as connection:
        for table_name in all_table_names:
            logger.info("Đang xóa bảng: %s", table_name)
            connection.execute(text(f"DROP TABLE IF EXISTS {table_name}{cascade}"))
        connection.commit()

    logger.info("Đang tạo lại tất cả các bảng cơ sở dữ liệu...")
    Base.metadata.create_all(bind=engine)
    logger.info("Cơ sở dữ liệu đã được tạo lại thành công!")

if __name__ == "__main__":
    recreate_database()
