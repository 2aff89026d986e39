"""
Checkout Simulation Script

Runs many terminal checkouts concurrently against a running API to test
order numbering, server-side gates and the Excel export under load.
Run from project root: python scripts/simulate.py
"""

import asyncio
import sys
import os
import random
import time
import argparse
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from orderflow.core.exceptions import CheckoutError
from orderflow.models import OrderType, PaymentMethod
from orderflow.services.checkout import Cart, CheckoutStateMachine, CheckoutStep
from orderflow.services.ordering import HttpOrderingBackend
from orderflow.services.payment import MockPaymentService

# Configuration
API_BASE_URL = "http://localhost:8001"
RESTAURANT_ID = 1
TOTAL_ORDERS = 50

# Sample data for random checkouts (matches the demo restaurant)
FIRST_NAMES = ["Anna", "Jonas", "Lea", "Felix", "Mia", "Paul", "Emma", "Lukas", "Sophie", "Ben"]
LAST_NAMES = ["Schmidt", "Müller", "Schneider", "Fischer", "Weber", "Wagner", "Becker", "Hoffmann"]
STREETS = ["Oranienstr.", "Torstr.", "Sonnenallee", "Bergmannstr.", "Invalidenstr.", "Karl-Marx-Str."]
ADDRESSES = [
    ("10115", "Mitte"),
    ("10117", "Mitte"),
    ("10961", "Kreuzberg"),
    ("10999", "Kreuzberg"),
    ("10999", "Neukölln"),
    ("12043", "Neukölln"),
    ("10999", "Berlin"),      # ambiguous, needs a manual zone choice
    ("80331", "München"),     # not served
]
MENU_ITEMS = [
    {"menu_item_id": 1, "name": "Pizza Margherita", "unit_price": "8.50"},
    {"menu_item_id": 2, "name": "Pizza Salami", "unit_price": "9.50"},
    {"menu_item_id": 3, "name": "Insalata Mista", "unit_price": "6.90"},
    {"menu_item_id": 4, "name": "Pizzabrot", "unit_price": "4.50"},
    {"menu_item_id": 5, "name": "Spaghetti Carbonara", "unit_price": "10.90"},
    {"menu_item_id": 6, "name": "Tiramisu", "unit_price": "5.50"},
    {"menu_item_id": 7, "name": "Cola 0,33l", "unit_price": "2.80"},
]
DISCOUNT_CODES = [None, None, "SOMMER20", "WILLKOMMEN5", "GIBTSNICHT"]


def fill_random_cart(cart: Cart) -> None:
    """Generate random cart lines."""
    for _ in range(random.randint(1, 4)):
        item = random.choice(MENU_ITEMS)
        cart.add(quantity=random.randint(1, 3), **item)


# =============================================================================
# SINGLE CHECKOUT
# =============================================================================

async def run_checkout(
    backend: HttpOrderingBackend,
    payments: MockPaymentService,
    checkout_num: int,
) -> dict[str, Any]:
    """Drive one checkout from open to success (or the first blocking gate)."""
    cart = Cart(restaurant_id=RESTAURANT_ID)
    fill_random_cart(cart)
    order_type = random.choice([OrderType.PICKUP, OrderType.DELIVERY])

    machine = CheckoutStateMachine(
        restaurant_id=RESTAURANT_ID,
        cart=cart,
        backend=backend,
        payment_service=payments,
    )
    start_time = time.time()
    result = {"checkout_num": checkout_num, "order_type": order_type.value, "success": False}

    try:
        await machine.open(order_type)
        machine.update_contact(
            name=f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
            phone=f"030 {random.randint(1000000, 9999999)}",
        )

        if order_type == OrderType.DELIVERY:
            postal_code, city = random.choice(ADDRESSES)
            await machine.update_address(
                street=random.choice(STREETS),
                house_number=str(random.randint(1, 120)),
                postal_code=postal_code,
                city=city,
            )
            resolution = machine.draft.zone_resolution
            if resolution.requires_selection:
                await machine.select_zone(random.choice(resolution.candidates).id)

        code = random.choice(DISCOUNT_CODES)
        if code:
            await machine.apply_discount(code)

        machine.set_payment_method(random.choice([PaymentMethod.CASH, PaymentMethod.CARD]))

        state = await machine.advance()
        if state == CheckoutStep.PAYMENT:
            state = await machine.advance(payment_method_id="pm_card_visa")

        result["time"] = round(time.time() - start_time, 3)
        if state == CheckoutStep.SUCCESS:
            result["success"] = True
            result["order_number"] = machine.draft.order_number
            result["total"] = machine.draft.payment.amount if machine.draft.payment else None
        else:
            result["error"] = machine.draft.error or f"stopped at {state.value}"

    except (CheckoutError, httpx.HTTPError) as e:
        result["time"] = round(time.time() - start_time, 3)
        result["error"] = str(e)[:100]

    return result


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, base_url: str = API_BASE_URL) -> dict[str, Any]:
    """
    Run the concurrent checkout simulation.

    Args:
        num_orders: Number of checkouts to run at once
        base_url: API under test
    """
    print("=" * 70)
    print("🔥 CHECKOUT SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Checkouts: {num_orders}")
    print(f"🎯 Target: {base_url}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()
    payments = MockPaymentService(failure_rate=0.1, min_latency=0.05, max_latency=0.3)

    async with HttpOrderingBackend(base_url) as backend:
        tasks = [run_checkout(backend, payments, i + 1) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Placed Orders: {len(successful)}/{num_orders}")
    print(f"⛔ Blocked/Failed: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    numbers = [r["order_number"] for r in successful]
    if len(numbers) != len(set(numbers)):
        print("\n❌ Duplicate order numbers detected!")
    elif numbers:
        print(f"\n✅ Order numbers unique ({min(numbers)}-{max(numbers)})")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        card_revenue = sum((r["total"] for r in successful if r.get("total") is not None), Decimal("0"))
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Checkout: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💳 Card Revenue: {card_revenue:.2f} €")

    if failed:
        print(f"\n⚠️  Blocked Checkout Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Checkout #{f['checkout_num']} [{f['order_type']}]: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION STEPS")
    print("=" * 70)
    print("1. Check Celery terminal - all export tasks should complete")
    print("2. Run: python scripts/verify.py")
    print("3. Open data/orders.xlsx to verify data integrity")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def check_api(base_url: str = API_BASE_URL) -> bool:
    """Pre-flight checks before the simulation."""
    print("\n" + "=" * 70)
    print("🧪 PRE-FLIGHT CHECKS")
    print("=" * 70)

    async with httpx.AsyncClient(base_url=base_url) as client:
        print("\n1️⃣ Health Check...")
        response = await client.get("/health")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Order Store: {data.get('order_store')}")
        print(f"   Redis: {data.get('redis')}")

        print("\n2️⃣ Zone Resolution...")
        response = await client.post(
            f"/api/restaurants/{RESTAURANT_ID}/zones/resolve",
            json={"postal_code": "10999", "city": "Kreuzberg"},
        )
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')} ({(data.get('zone') or {}).get('name')})")

        print("\n3️⃣ Slots...")
        response = await client.get(f"/api/restaurants/{RESTAURANT_ID}/slots")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        slots = response.json().get("slots", [])
        print(f"   ✅ {len(slots)} slots, first: {slots[0]['label'] if slots else '-'}")

    print("\n" + "=" * 70)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Checkout Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of checkouts")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--skip-tests", action="store_true", help="Skip pre-flight checks")
    args = parser.parse_args()

    if not args.skip_tests:
        if not asyncio.run(check_api(args.url)):
            print("\n❌ Pre-flight checks failed. Fix issues before running simulation.")
            sys.exit(1)
        print("\n✅ Pre-flight checks passed!")

    asyncio.run(run_simulation(num_orders=args.orders, base_url=args.url))
