"""Tests for the Excel export and its Celery task."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
import redis
from kombu.exceptions import OperationalError

from orderflow import main, tasks
from orderflow.core.config import get_settings
from orderflow.models import OrderType
from orderflow.services.excel_manager import ExcelManager
from orderflow.services.store import StoredOrder, StoredOrderItem


@pytest.fixture(autouse=True)
def data_directory(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIRECTORY", str(tmp_path))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def stored_order(order_id: int = 1) -> StoredOrder:
    return StoredOrder(
        restaurant_id=1,
        order_type=OrderType.DELIVERY,
        customer_name="Anna Schmidt",
        customer_phone="030 1234567",
        subtotal=Decimal("32.00"),
        discount_amount=Decimal("0.00"),
        delivery_fee=Decimal("3.50"),
        total=Decimal("35.50"),
        delivery_zone_id=2,
        items=[
            StoredOrderItem(menu_item_id=2, item_name="Pizza Salami", quantity=2,
                            unit_price=Decimal("9.50"), variant_name="32 cm"),
        ],
    ).with_identity(order_id, order_id, datetime(2024, 6, 12, 16, 2, tzinfo=timezone.utc))


class TestExportRow:

    def test_row(self):
        row = stored_order().to_export_row()
        assert row["order_number"] == 1
        assert row["items"] == "2x Pizza Salami (32 cm)"
        assert row["total"] == 35.5
        assert row["status"] == "pending"
        assert set(row) == set(ExcelManager.ORDER_COLUMNS) - {"exported_at"}


class TestExcelManager:

    def test_export_appends_rows(self, data_directory):
        assert ExcelManager.export_order(stored_order(1).to_export_row())["success"]
        assert ExcelManager.export_order(stored_order(2).to_export_row())["success"]

        rows = ExcelManager.get_all_orders()
        assert [row["order_number"] for row in rows] == [1, 2]
        assert rows[0]["customer_name"] == "Anna Schmidt"
        assert (data_directory / "orders.xlsx").exists()

    def test_clear(self):
        ExcelManager.export_order(stored_order().to_export_row())
        assert ExcelManager.clear_all_orders()
        assert ExcelManager.get_all_orders() == []


class TestTasks:

    def test_export_task_runs_inline(self):
        result = tasks.export_order_to_excel(stored_order().to_export_row())
        assert result["success"]
        assert "processing_time_seconds" in result

    def test_queue_order_export(self, monkeypatch):
        queued = []
        monkeypatch.setattr(tasks.export_order_to_excel, "delay", queued.append)
        tasks.queue_order_export(stored_order())
        assert queued[0]["order_id"] == 1

    @pytest.mark.parametrize("error", [
        OperationalError("broker unreachable"),
        redis.ConnectionError("connection refused"),
    ])
    def test_broker_outage_does_not_raise(self, monkeypatch, error):
        def broker_down(order):
            raise error

        monkeypatch.setattr(main, "queue_order_export", broker_down)
        main.export_new_order(stored_order())

    def test_clear_excel_file(self, data_directory):
        ExcelManager.export_order(stored_order().to_export_row())
        assert tasks.clear_excel_file()["success"]
        assert not (data_directory / "orders.xlsx").exists()

    def test_worker_health_check(self):
        assert tasks.health_check()["status"] == "healthy"
