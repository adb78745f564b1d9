"""
Lunch Rush Simulation Script

Fires many concurrent QR-menu checkouts at one restaurant to exercise
order creation and the live order list under load.
Run from project root: python scripts/simulate.py --slug tasty-bites

Version: 1.0.0
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

# Sample data for random customers
FIRST_NAMES = ["Aarav", "Diya", "Kabir", "Meera", "Rohan", "Isha", "Vikram", "Anaya", "Arjun", "Priya"]
TABLES = [f"T{n}" for n in range(1, 21)]


def generate_random_customer() -> dict[str, Any]:
    """Generate random checkout details; a few are takeaway."""
    order_type = random.choice(["table", "table", "table", "takeaway"])
    return {
        "customer_name": random.choice(FIRST_NAMES),
        "customer_phone": f"{random.choice('6789')}{random.randint(100000000, 999999999)}",
        "order_type": order_type,
        "table_number": random.choice(TABLES) if order_type == "table" else None,
        "customer_notes": random.choice([None, "Less spicy", "No onions", "Extra napkins"]),
    }


def generate_random_lines(menu: list[dict]) -> list[dict]:
    """Pick 1-4 menu items, choosing a size wherever the item has sizes."""
    lines = []
    for item in random.sample(menu, k=min(len(menu), random.randint(1, 4))):
        line = {"menu_item_id": item["id"], "quantity": random.randint(1, 3)}
        if item["sizes"]:
            line["size"] = random.choice(item["sizes"])["name"]
        if item["addons"] and random.random() < 0.4:
            line["addons"] = [random.choice(item["addons"])["name"]]
        lines.append(line)
    return lines


# =============================================================================
# CHECKOUT SIMULATION
# =============================================================================

async def send_checkout(
    client: httpx.AsyncClient,
    slug: str,
    menu: list[dict],
    order_num: int
) -> dict[str, Any]:
    """Place one order from the customer menu."""
    payload = {**generate_random_customer(), "lines": generate_random_lines(menu)}
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/menu/{slug}/orders",
            json=payload,
            timeout=30.0
        )
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }

    elapsed = round(time.time() - start_time, 3)
    if response.status_code == 201:
        data = response.json()
        return {
            "order_num": order_num,
            "success": True,
            "order_number": data.get("order_number"),
            "total": data.get("total"),
            "time": elapsed,
        }
    return {
        "order_num": order_num,
        "success": False,
        "error": response.text[:100],
        "time": elapsed,
    }


async def fetch_menu(client: httpx.AsyncClient, slug: str) -> list[dict]:
    response = await client.get(f"{API_BASE_URL}/api/menu/{slug}")
    response.raise_for_status()
    return response.json()["items"]


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(slug: str, num_orders: int = TOTAL_ORDERS) -> dict[str, Any]:
    """
    Run the lunch rush.

    Args:
        slug: Restaurant whose QR menu is ordered from
        num_orders: Number of concurrent checkouts
    """
    print("=" * 70)
    print("🔥 LUNCH RUSH SIMULATION")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}/api/menu/{slug}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        menu = await fetch_menu(client, slug)
        if not menu:
            print("\n❌ The menu has no available items.")
            return {"total": num_orders, "successful": 0, "failed": num_orders, "results": []}

        print(f"\n🍽️  {len(menu)} menu items available, firing orders...\n")
        tasks = [send_checkout(client, slug, menu, i + 1) for i in range(num_orders)]
        results = await asyncio.gather(*tasks)

    total_time = round(time.time() - start_time, 2)

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        total_revenue = sum(r.get("total", 0) for r in successful)
        numbers = {r["order_number"] for r in successful}

        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Value: ₹{total_revenue:.2f}")
        print(f"   🔢 Distinct order numbers: {len(numbers)}/{len(successful)}")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)
    print("Open the restaurant dashboard: every order should appear once,")
    print("with a single new-order alert per arrival batch.")
    print("=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


async def check_health() -> bool:
    """Make sure the API is up before the rush."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health")
        except httpx.HTTPError as e:
            print(f"   ❌ API unreachable: {e}")
            return False

    data = response.json()
    print(f"   Status: {data.get('status')}")
    print(f"   Database: {data.get('database')}")
    print(f"   Change feed: {data.get('change_feed')}")
    return response.status_code == 200


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Lunch Rush Simulation Script")
    parser.add_argument("--slug", required=True, help="Restaurant slug (from its QR code URL)")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--base-url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.base_url.rstrip("/")

    print("\n🩺 Health Check...")
    if not asyncio.run(check_health()):
        print("\n❌ Pre-flight check failed. Start the API first.")
        sys.exit(1)

    asyncio.run(run_simulation(args.slug, num_orders=args.orders))
