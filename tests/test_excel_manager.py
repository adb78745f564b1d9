import pandas as pd
import pytest

import app.services.excel_manager as excel_manager
from app.services.excel_manager import ExcelManager

REPORT = {
    "days": 30,
    "total_revenue": 735.0,
    "total_orders": 3,
    "avg_order_value": 245.0,
    "top_items": [
        {"name": "Biryani", "count": 3, "revenue": 600.0},
        {"name": "Chai", "count": 5, "revenue": 100.0},
    ],
    "daily_revenue": [
        {"date": "2026-10-01", "revenue": 315.0, "orders": 2},
        {"date": "2026-10-02", "revenue": 420.0, "orders": 1},
    ],
    "order_type_distribution": [{"type": "table", "count": 2}, {"type": "takeaway", "count": 1}],
}


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    directory = tmp_path / "reports"
    monkeypatch.setattr(excel_manager, "DATA_DIR", directory)
    return directory


def test_export_writes_every_sheet(data_dir):
    result = ExcelManager.export_report(7, REPORT)

    assert result["success"]
    assert result["exported_at"] is not None
    path = data_dir / "sales_report_7.xlsx"
    assert path.exists()

    sheets = pd.read_excel(path, sheet_name=None, engine="openpyxl")
    assert set(sheets) == {"Summary", "Top Items", "Daily Revenue", "Order Types"}
    assert sheets["Top Items"]["name"].tolist() == ["Biryani", "Chai"]
    assert sheets["Daily Revenue"]["orders"].tolist() == [2, 1]


def test_summary_reads_back_formatted_values():
    ExcelManager.export_report(7, REPORT)

    summary = {row["Metric"]: row["Value"] for row in ExcelManager.read_summary(7)}

    assert summary["Total Revenue"] == "₹735.00"
    assert summary["Average Order Value"] == "₹245.00"


def test_missing_report_reads_empty():
    assert ExcelManager.read_summary(99) == []


def test_export_reports_lock_timeout(data_dir, monkeypatch):
    from filelock import FileLock

    data_dir.mkdir(parents=True)
    monkeypatch.setattr(ExcelManager, "LOCK_TIMEOUT", 0.1)
    held = FileLock(f"{ExcelManager.report_path(7)}.lock")

    with held:
        result = ExcelManager.export_report(7, REPORT)

    assert not result["success"]
    assert "Lock timeout" in result["message"]


def test_export_task_runs_locally(data_dir):
    from app.tasks import export_sales_report

    result = export_sales_report.apply(args=(7, REPORT)).get()

    assert result["success"]
    assert "processing_time_seconds" in result
    assert (data_dir / "sales_report_7.xlsx").exists()


def test_exports_run_on_the_reports_queue():
    from app.celery_worker import REPORTS_QUEUE, celery_app
    from app.core.config import get_settings

    settings = get_settings()

    assert celery_app.conf.task_default_queue == REPORTS_QUEUE
    assert celery_app.conf.worker_concurrency == settings.report_worker_concurrency
    assert celery_app.conf.task_time_limit == settings.report_time_limit_seconds
    assert celery_app.conf.task_soft_time_limit < celery_app.conf.task_time_limit
