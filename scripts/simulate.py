"""
Chaos Simulation Script

Fires concurrent orders at a stock-limited menu item and checks that the
API never sells more units than were in stock.
Run from project root with the API up: python scripts/simulate.py

Version: 1.0.0
"""

import argparse
import asyncio
import random
import sys
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50
PASSWORD = "simulate-123"

FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]


# =============================================================================
# SETUP
# =============================================================================

async def create_customer(client: httpx.AsyncClient, run_id: str, num: int) -> dict[str, str]:
    """Register and log in a throwaway customer, returning auth headers."""
    email = f"sim-{run_id}-{num}@example.com"
    name = f"{random.choice(FIRST_NAMES)} Sim{num}"

    response = await client.post(
        f"{API_BASE_URL}/api/auth/register",
        json={"email": email, "password": PASSWORD, "name": name},
    )
    response.raise_for_status()

    response = await client.post(
        f"{API_BASE_URL}/api/auth/login",
        json={"email": email, "password": PASSWORD},
    )
    response.raise_for_status()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def find_limited_item(
    client: httpx.AsyncClient,
    menu_item_id: Optional[int] = None,
) -> Optional[dict[str, Any]]:
    """Pick a stock-tracked menu item (or the one asked for)."""
    response = await client.get(f"{API_BASE_URL}/api/restaurants", params={"limit": 100})
    response.raise_for_status()

    for restaurant in response.json()["restaurants"]:
        for item in restaurant["menu"]:
            if menu_item_id is not None and item["id"] != menu_item_id:
                continue
            if menu_item_id is None and item["stock"] is None:
                continue
            return item
    return None


async def current_stock(client: httpx.AsyncClient, restaurant_id: int, menu_item_id: int) -> Optional[int]:
    response = await client.get(f"{API_BASE_URL}/api/restaurants/{restaurant_id}")
    response.raise_for_status()
    for item in response.json()["menu"]:
        if item["id"] == menu_item_id:
            return item["stock"]
    return None


# =============================================================================
# ORDER FLOOD
# =============================================================================

async def send_order(
    client: httpx.AsyncClient,
    headers: dict[str, str],
    item: dict[str, Any],
    order_num: int,
) -> dict[str, Any]:
    """Place a one-unit order and record the outcome."""
    payload = {
        "restaurant_id": item["restaurant_id"],
        "items": [{"menu_item_id": item["id"], "quantity": 1}],
    }
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/orders", json=payload, headers=headers, timeout=30.0)
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "status": None,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }

    elapsed = round(time.time() - start_time, 3)
    data = response.json()

    if response.status_code == 201:
        return {
            "order_num": order_num,
            "success": True,
            "status": 201,
            "order_id": data["id"],
            "total": Decimal(data["total"]),
            "time": elapsed,
        }
    return {
        "order_num": order_num,
        "success": False,
        "status": response.status_code,
        "error": data.get("error") or data.get("detail"),
        "time": elapsed,
    }


async def run_simulation(num_orders: int = TOTAL_ORDERS, menu_item_id: Optional[int] = None) -> dict[str, Any]:
    """
    Run the chaos simulation.

    Args:
        num_orders: Number of concurrent one-unit orders
        menu_item_id: Menu item to hammer; defaults to the first stock-tracked item
    """
    print("=" * 70)
    print("🔥 CHAOS SIMULATION - LAST UNITS UNDER CONCURRENCY")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    run_id = uuid.uuid4().hex[:8]

    async with httpx.AsyncClient(timeout=30.0) as client:
        item = await find_limited_item(client, menu_item_id)
        if item is None:
            print("\n❌ No stock-tracked menu item found. Start the API with SEED_DEMO_DATA=true.")
            return {"total": num_orders, "successful": 0, "failed": num_orders, "results": []}

        stock_before = item["stock"]
        print(f"\n🍽️  Item #{item['id']} {item['name']} at ${item['price']}, stock {stock_before}")

        print(f"\n👥 Registering {num_orders} customers...")
        customers = await asyncio.gather(*(create_customer(client, run_id, i + 1) for i in range(num_orders)))

        print("\n🚀 Firing orders...\n")
        start_time = time.time()
        results = await asyncio.gather(
            *(send_order(client, headers, item, i + 1) for i, headers in enumerate(customers))
        )
        total_time = round(time.time() - start_time, 2)

        stock_after = await current_stock(client, item["restaurant_id"], item["id"])

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    by_status: dict[Any, int] = {}
    for r in failed:
        by_status[r["status"]] = by_status.get(r["status"], 0) + 1
    for code, count in sorted(by_status.items(), key=lambda kv: str(kv[0])):
        print(f"   HTTP {code}: {count}")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        revenue = sum((r["total"] for r in successful), Decimal("0.00"))
        print(f"\n📈 Average Response: {avg_time}s")
        print(f"   💰 Total Revenue: ${revenue}")

    print("\n" + "=" * 70)
    print("🔍 STOCK CHECK")
    print("=" * 70)
    print(f"   Stock before: {stock_before}")
    print(f"   Stock after:  {stock_after}")

    oversold = stock_before is not None and len(successful) > stock_before
    consistent = stock_after is None or stock_before is None or stock_before - stock_after == len(successful)
    if oversold or not consistent:
        print("   ❌ Stock does not match the orders that went through!")
    else:
        print("   ✅ No overselling")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "oversold": oversold,
        "results": results,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--menu-item", type=int, default=None, help="Menu item id to order")
    args = parser.parse_args()

    summary = asyncio.run(run_simulation(num_orders=args.orders, menu_item_id=args.menu_item))
    sys.exit(1 if summary.get("oversold") else 0)
