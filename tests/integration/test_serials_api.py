"""Serial allocation, validation, lifecycle and stats through the HTTP API."""

import asyncio

import pytest
from sqlalchemy import func, select

from serial_hub.db_models import SerialCounter, SerialRecord
from serial_hub.services.serials import BASE_SERIAL, SerialAllocator
from serial_hub.errors import ConflictError


@pytest.mark.asyncio
async def test_first_allocation_starts_at_base(allocate, client):
    resp = await allocate()
    assert resp.status_code == 200
    body = resp.json()
    assert body == {"serial": str(BASE_SERIAL), "labelPayload": f"(21){BASE_SERIAL}"}

    check = await client.get(f"/serials/validate/{BASE_SERIAL}")
    assert check.status_code == 200
    assert check.json() == {
        "valid": True,
        "serial": str(BASE_SERIAL),
        "batch": "B2025-01",
        "expiryDate": "2027-01-10",
        "productCode": "05012345678900",
    }


@pytest.mark.asyncio
async def test_allocations_are_unique_and_increasing(allocate, client):
    serials = [(await allocate()).json()["serial"] for _ in range(5)]
    assert serials == [str(BASE_SERIAL + i) for i in range(5)]

    everything = (await client.get("/serials/all")).json()
    assert [s["serial"] for s in everything] == serials
    assert {s["status"] for s in everything} == {"GENERATED"}


@pytest.mark.asyncio
async def test_counter_seeded_from_existing_serials(allocate, insert_serial):
    await insert_serial("SN-00000042")
    await insert_serial("20000005")

    resp = await allocate()
    assert resp.json()["serial"] == "20000006"


@pytest.mark.asyncio
async def test_existing_serial_at_next_value_is_conflict(app, allocate, insert_serial):
    assert (await allocate()).status_code == 200
    # a writer outside the counter already took the next value
    await insert_serial(str(BASE_SERIAL + 1))

    resp = await allocate()
    assert resp.status_code == 409
    assert resp.json()["kind"] == "ConflictError"
    assert str(BASE_SERIAL + 1) in resp.json()["error"]

    async with app.state.db.session() as session:
        count = (await session.execute(select(func.count()).select_from(SerialRecord))).scalar_one()
        counter = await session.get(SerialCounter, "serial")
    assert count == 2
    # the failed allocation rolled the counter back as well
    assert counter.value == BASE_SERIAL


@pytest.mark.asyncio
async def test_stale_counter_seed_hits_unique_backstop(app):
    """A second seed written from a stale read collides on the counter row."""
    async with app.state.db.session() as first:
        await SerialAllocator(first).allocate("P", "B", "2025-01-01", "2026-01-01")

    async with app.state.db.session() as second:
        allocator = SerialAllocator(second)

        async def stale_counter_read():
            # what a request that read before the first commit would do
            second.add(SerialCounter(name="serial", value=BASE_SERIAL))
            await second.flush()
            return BASE_SERIAL

        allocator.next_serial_value = stale_counter_read
        with pytest.raises(ConflictError):
            await allocator.allocate("P", "B", "2025-01-01", "2026-01-01")


@pytest.mark.asyncio
async def test_concurrent_allocations_on_empty_store(app, allocate):
    responses = await asyncio.gather(*(allocate() for _ in range(8)))

    assert {r.status_code for r in responses} <= {200, 409}
    issued = [r.json()["serial"] for r in responses if r.status_code == 200]
    assert issued
    assert len(set(issued)) == len(issued)

    async with app.state.db.session() as session:
        stored = (await session.execute(select(SerialRecord.serial))).scalars().all()
    assert sorted(stored) == sorted(issued)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"productCode": None}, "productCode is required"),
        ({"batch": ""}, "batch is required"),
        ({"manufactureDate": None}, "manufactureDate is required"),
        ({"expiryDate": "yesterday"}, "Invalid expiryDate format"),
        ({"manufactureDate": "2027-01-10"}, "manufactureDate must be before expiryDate"),
    ],
)
async def test_allocation_validation(allocate, client, overrides, message):
    resp = await allocate(**overrides)
    assert resp.status_code == 400
    assert resp.json() == {"error": message, "kind": "ValidationError"}
    assert (await client.get("/serials/all")).json() == []


@pytest.mark.asyncio
async def test_validate_unknown_serial(client):
    resp = await client.get("/serials/validate/99999999")
    assert resp.status_code == 404
    assert resp.json()["valid"] is False
    assert resp.json()["kind"] == "NotFound"


@pytest.mark.asyncio
async def test_full_lifecycle(allocate, client):
    serial = (await allocate()).json()["serial"]

    resp = await client.patch(f"/serials/status/{serial}", json={"status": "printed"})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "serial": serial, "status": "PRINTED"}

    resp = await client.patch(f"/serials/status/{serial}", json={"status": "SCANNED"})
    assert resp.json()["status"] == "SCANNED"

    # terminal
    resp = await client.patch(f"/serials/status/{serial}", json={"status": "PRINTED"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidTransitionError"


@pytest.mark.asyncio
async def test_skip_transition_leaves_status_unchanged(allocate, client):
    serial = (await allocate()).json()["serial"]

    resp = await client.patch(f"/serials/status/{serial}", json={"status": "SCANNED"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidTransitionError"
    assert "from GENERATED to SCANNED" in resp.json()["error"]

    everything = (await client.get("/serials/all")).json()
    assert everything[0]["status"] == "GENERATED"


@pytest.mark.asyncio
async def test_same_state_transition_rejected(allocate, client):
    serial = (await allocate()).json()["serial"]
    await client.patch(f"/serials/status/{serial}", json={"status": "PRINTED"})

    resp = await client.patch(f"/serials/status/{serial}", json={"status": "PRINTED"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "InvalidTransitionError"


@pytest.mark.asyncio
async def test_unknown_legacy_status_accepts_any_transition(insert_serial, client):
    await insert_serial("LEGACY-1", status="QUARANTINE")

    resp = await client.patch("/serials/status/LEGACY-1", json={"status": "SCANNED"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "SCANNED"


@pytest.mark.asyncio
async def test_status_errors(allocate, client):
    serial = (await allocate()).json()["serial"]

    resp = await client.patch(f"/serials/status/{serial}", json={"status": "SHIPPED"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "ValidationError"

    resp = await client.patch(f"/serials/status/{serial}", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Status is required"

    resp = await client.patch("/serials/status/00000000", json={"status": "PRINTED"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_stats(allocate, client):
    serials = [(await allocate()).json()["serial"] for _ in range(4)]
    await client.patch(f"/serials/status/{serials[0]}", json={"status": "PRINTED"})
    await client.patch(f"/serials/status/{serials[1]}", json={"status": "PRINTED"})
    await client.patch(f"/serials/status/{serials[1]}", json={"status": "SCANNED"})

    resp = await client.get("/serials/stats")
    assert resp.json() == {"generated": 2, "printed": 1, "scanned": 1, "total": 4, "pending": 3}


@pytest.mark.asyncio
async def test_malformed_body_is_400(client):
    resp = await client.post("/serials/generate", content=b"[1, 2", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["kind"] == "ValidationError"


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["database"]["status"] == "healthy"
