"""
Fire concurrent "bought" toggles for one gift from distinct visitors and
report who won. Exactly one request should succeed per run.

    python scripts/claim_race.py --gift-id 1 --visitors 20
"""
import argparse
import asyncio
from collections import Counter
import time
from uuid import uuid4

import httpx


async def run(base_url: str, gift_id: int, visitors: int, release: bool) -> None:
    latencies: list[float] = []
    statuses: Counter[int] = Counter()
    winners: list[str] = []

    async def claim(visitor_id: str) -> None:
        async with httpx.AsyncClient(
            base_url=base_url,
            timeout=30.0,
            cookies={"visitor_id": visitor_id},
        ) as client:
            start = time.perf_counter()
            res = await client.post("/toggle", json={"giftId": gift_id, "bought": True})
            latencies.append((time.perf_counter() - start) * 1000.0)
            statuses[res.status_code] += 1
            if res.status_code == 200 and res.json().get("boughtBy") == visitor_id:
                winners.append(visitor_id)

    ids = [str(uuid4()) for _ in range(visitors)]
    await asyncio.gather(*[claim(visitor_id) for visitor_id in ids])

    lat_sorted = sorted(latencies)
    p50 = lat_sorted[len(lat_sorted) // 2]
    p95 = lat_sorted[max(int(len(lat_sorted) * 0.95) - 1, 0)]
    print(f"visitors={visitors} statuses={dict(statuses)} winners={len(winners)} p50_ms={p50:.2f} p95_ms={p95:.2f}")
    if len(winners) != 1:
        print(f"UNEXPECTED: {len(winners)} winners {winners}")

    if release and winners:
        async with httpx.AsyncClient(base_url=base_url, timeout=30.0, cookies={"visitor_id": winners[0]}) as client:
            res = await client.post("/toggle", json={"giftId": gift_id, "bought": False})
            print(f"release status={res.status_code} body={res.json()}")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--base-url", default="http://127.0.0.1:8000")
    parser.add_argument("--gift-id", type=int, required=True)
    parser.add_argument("--visitors", type=int, default=20)
    parser.add_argument("--release", action="store_true", help="release the gift again after the run")
    args = parser.parse_args()
    asyncio.run(run(args.base_url, args.gift_id, args.visitors, args.release))


if __name__ == "__main__":
    main()
