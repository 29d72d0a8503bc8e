"""Simple concurrency demo that fires competing votes and locks at the ASGI app.
This runs in-process and doesn't require the server to be started separately.
Run: python concurrency_demo.py
"""
import asyncio
from main import app, participation, ledger
from sample_data import seed
import httpx


async def run():
    seed()
    trip_id = 1
    host_id = 1
    proposals = ledger.proposals(trip_id, "transport")
    members = [m.user_id for m in participation.approved_members(trip_id)]
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        base = f"/trips/{trip_id}/negotiation/transport/proposals/{proposals[0].id}"
        votes = [client.post(f"{base}/vote", json={"user_id": uid, "decision": "YES"}) for uid in members]
        locks = [client.post(f"{base}/lock", json={"host_id": host_id}) for _ in range(5)]
        res = await asyncio.gather(*votes, *locks)
        for r in res:
            print(r.status_code, r.json())


if __name__ == "__main__":
    asyncio.run(run())
