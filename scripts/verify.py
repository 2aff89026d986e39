"""
Excel Verification Script

Verifies data integrity of the Excel export file.
Run from project root: python scripts/verify.py
"""

import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from orderflow.core.config import get_settings
from orderflow.services.excel_manager import ExcelManager

EXCEL_FILE = get_settings().excel_path


def verify_excel() -> bool:
    """Verify Excel file integrity after simulation."""

    print("=" * 60)
    print("🔍 EXCEL VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {EXCEL_FILE}")
    print("=" * 60)

    if not EXCEL_FILE.exists():
        print("\n❌ Excel file not found!")
        print("   Run the simulation first: python scripts/simulate.py")
        return False

    try:
        df = pd.read_excel(EXCEL_FILE, engine="openpyxl")
        print(f"\n✅ File loaded successfully!")
    except (OSError, ValueError) as e:
        print(f"\n❌ Could not read Excel file: {e}")
        return False

    print(f"\n📊 STATISTICS:")
    print(f"   Total Orders: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    missing = [col for col in ExcelManager.ORDER_COLUMNS if col not in df.columns]
    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
    else:
        print(f"\n✅ All columns present")

    # Order numbers are unique per restaurant
    if {"restaurant_id", "order_number"} <= set(df.columns):
        duplicates = df.duplicated(subset=["restaurant_id", "order_number"]).sum()
        if duplicates > 0:
            print(f"\n⚠️ {duplicates} duplicate order numbers found!")
        else:
            print(f"✅ No duplicate order numbers")

    # Totals must add up
    amount_columns = {"subtotal", "discount_amount", "delivery_fee", "total"}
    if amount_columns <= set(df.columns):
        expected = (df["subtotal"] - df["discount_amount"] + df["delivery_fee"]).clip(lower=0).round(2)
        mismatched = (expected - df["total"].round(2)).abs() > 0.005
        if mismatched.any():
            print(f"\n⚠️ {int(mismatched.sum())} orders whose total does not add up!")
        else:
            print(f"✅ All totals add up")

    if "total" in df.columns and len(df) > 0:
        print(f"\n💰 REVENUE:")
        print(f"   Total: {df['total'].sum():.2f} €")
        print(f"   Average: {df['total'].mean():.2f} €")
        if "order_type" in df.columns:
            for order_type, group in df.groupby("order_type"):
                print(f"   {order_type}: {len(group)} orders, {group['total'].sum():.2f} €")

    print(f"\n📋 RECENT ORDERS:")
    print("-" * 60)
    if len(df) > 0:
        cols = ["order_id", "order_number", "customer_name", "total", "status"]
        cols = [c for c in cols if c in df.columns]
        print(df[cols].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE")
    print("=" * 60)

    return True


if __name__ == "__main__":
    verify_excel()
