"""
Excel Report Export with Concurrency Control

Writes a restaurant's sales report to an Excel workbook:
- Summary sheet (revenue, order count, average value)
- Top items sheet
- Daily revenue sheet
- Order types sheet

Every restaurant has its own workbook; a file lock guards it so two
exports for the same tenant never interleave.

Version: 1.0.0
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd
from filelock import FileLock, Timeout

from app.core.config import get_settings
from app.core.helpers import format_currency

settings = get_settings()
logger = logging.getLogger(__name__)

DATA_DIR = Path(settings.data_directory)


class ExcelManager:
    """Thread-safe Excel report writer."""

    LOCK_TIMEOUT = settings.report_lock_timeout

    TOP_ITEM_COLUMNS = ["name", "count", "revenue"]
    DAILY_COLUMNS = ["date", "revenue", "orders"]
    ORDER_TYPE_COLUMNS = ["type", "count"]

    @classmethod
    def report_path(cls, restaurant_id: int) -> Path:
        return DATA_DIR / f"sales_report_{restaurant_id}.xlsx"

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        if not DATA_DIR.exists():
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {DATA_DIR}")

    @classmethod
    def _summary_frame(cls, report: dict[str, Any]) -> pd.DataFrame:
        return pd.DataFrame(
            [
                ["Period (days)", report.get("days")],
                ["Total Revenue", format_currency(report.get("total_revenue"))],
                ["Total Orders", report.get("total_orders", 0)],
                ["Average Order Value", format_currency(report.get("avg_order_value"))],
            ],
            columns=["Metric", "Value"],
        )

    @classmethod
    def export_report(cls, restaurant_id: int, report: dict[str, Any]) -> dict[str, Any]:
        """Write the report workbook under a file lock."""
        cls._ensure_data_dir()

        path = cls.report_path(restaurant_id)
        result = {
            "success": False,
            "message": "",
            "restaurant_id": restaurant_id,
            "path": str(path),
            "exported_at": None,
        }

        try:
            lock = FileLock(f"{path}.lock", timeout=cls.LOCK_TIMEOUT)

            with lock:
                logger.debug(f"Lock acquired for restaurant #{restaurant_id} report")

                with pd.ExcelWriter(str(path), engine="openpyxl") as writer:
                    cls._summary_frame(report).to_excel(
                        writer, sheet_name="Summary", index=False
                    )
                    pd.DataFrame(
                        report.get("top_items", []), columns=cls.TOP_ITEM_COLUMNS
                    ).to_excel(writer, sheet_name="Top Items", index=False)
                    pd.DataFrame(
                        report.get("daily_revenue", []), columns=cls.DAILY_COLUMNS
                    ).to_excel(writer, sheet_name="Daily Revenue", index=False)
                    pd.DataFrame(
                        report.get("order_type_distribution", []), columns=cls.ORDER_TYPE_COLUMNS
                    ).to_excel(writer, sheet_name="Order Types", index=False)

                export_time = datetime.now().isoformat()
                logger.info(f"Sales report for restaurant #{restaurant_id} exported to {path}")

                result["success"] = True
                result["message"] = f"Report exported to {path.name}"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for restaurant #{restaurant_id} report")

        except Timeout:
            result["message"] = f"Lock timeout ({cls.LOCK_TIMEOUT}s)"
            logger.error(f"Lock timeout for restaurant #{restaurant_id} report")

        return result

    @classmethod
    def read_summary(cls, restaurant_id: int) -> list[dict[str, Any]]:
        """Read back the summary sheet of an exported report."""
        path = cls.report_path(restaurant_id)
        if not path.exists():
            return []
        df = pd.read_excel(path, sheet_name="Summary", engine="openpyxl")
        return df.to_dict("records")
