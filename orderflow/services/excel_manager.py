"""
Excel File Manager with Concurrency Control

Appends committed orders to the order workbook. Several Celery workers
may export at the same time, so every read-modify-write of the workbook
happens under a file lock.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from orderflow.core.config import get_settings

logger = logging.getLogger(__name__)


class ExcelManager:
    """File-locked Excel export of orders."""

    ORDER_COLUMNS = [
        "order_id",
        "order_number",
        "restaurant_id",
        "order_type",
        "created_at",
        "scheduled_time",
        "customer_name",
        "customer_phone",
        "customer_email",
        "customer_address",
        "delivery_zone_id",
        "items",
        "subtotal",
        "discount_code",
        "discount_amount",
        "delivery_fee",
        "total",
        "payment_method",
        "payment_intent_id",
        "status",
        "exported_at",
    ]

    @classmethod
    def orders_file(cls) -> Path:
        return get_settings().excel_path

    @classmethod
    def _lock_file(cls) -> Path:
        path = cls.orders_file()
        return path.with_name(path.name + ".lock")

    @classmethod
    def _ensure_data_dir(cls) -> None:
        """Create data directory if needed."""
        data_dir = cls.orders_file().parent
        if not data_dir.exists():
            data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {data_dir}")

    @classmethod
    def _load_or_create_df(cls, file_path: Path) -> pd.DataFrame:
        """Load existing file or create new DataFrame."""
        if file_path.exists():
            try:
                return pd.read_excel(file_path, engine="openpyxl")
            except (OSError, ValueError) as e:
                logger.warning(f"Error reading {file_path}: {e}")
                return pd.DataFrame(columns=cls.ORDER_COLUMNS)
        return pd.DataFrame(columns=cls.ORDER_COLUMNS)

    @classmethod
    def export_order(cls, order_data: dict[str, Any], lock_timeout: Optional[float] = None) -> dict[str, Any]:
        """
        Append one order row to the workbook.

        Args:
            order_data: Row produced by ``StoredOrder.to_export_row()``
            lock_timeout: Seconds to wait for the lock (settings default)

        Returns:
            dict with success, message, order_id and exported_at
        """
        cls._ensure_data_dir()
        timeout = lock_timeout if lock_timeout is not None else get_settings().excel_lock_timeout
        orders_file = cls.orders_file()

        order_id = order_data.get("order_id", 0)
        result = {
            "success": False,
            "message": "",
            "order_id": order_id,
            "exported_at": None,
        }

        try:
            with FileLock(str(cls._lock_file()), timeout=timeout):
                logger.debug(f"Lock acquired for Order #{order_id}")

                df = cls._load_or_create_df(orders_file)

                export_time = datetime.now().isoformat()
                new_row = {column: order_data.get(column) for column in cls.ORDER_COLUMNS}
                new_row["created_at"] = order_data.get("created_at") or export_time
                new_row["exported_at"] = export_time

                if df.empty:
                    df = pd.DataFrame([new_row], columns=cls.ORDER_COLUMNS)
                else:
                    df = pd.concat([df, pd.DataFrame([new_row])], ignore_index=True)
                df.to_excel(str(orders_file), index=False, engine="openpyxl")

                logger.info(f"Order #{order_id} exported to Excel")

                result["success"] = True
                result["message"] = f"Order #{order_id} exported"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for Order #{order_id}")

        except Timeout:
            result["message"] = f"Lock timeout ({timeout}s)"
            logger.error(f"Lock timeout for Order #{order_id}")

        return result

    @classmethod
    def get_all_orders(cls) -> list[dict[str, Any]]:
        """Get all orders from Excel."""
        orders_file = cls.orders_file()
        if not orders_file.exists():
            return []
        return pd.read_excel(orders_file, engine="openpyxl").to_dict("records")

    @classmethod
    def clear_all_orders(cls) -> bool:
        """Delete the workbook and its lock file."""
        for path in (cls.orders_file(), cls._lock_file()):
            if path.exists():
                path.unlink()
        logger.info("Order workbook cleared")
        return True
