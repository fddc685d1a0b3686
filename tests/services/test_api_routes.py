"""API route tests — health, runs, tools and system endpoints over ASGITransport.

Tests cover:
    - Liveness always 200; readiness 503 while the system is halted
    - POST /runs journals the run and returns 201 (guard outcomes are results)
    - GET /runs/{id}: 200 for journaled runs, 404 for unknown ids
    - Tool catalogue listing and direct calls through the registry
    - Realized P&L feeds the kill switch; reset clears the halt
    - Request validation errors → 400 VALIDATION_ERROR
"""

import uuid


READY = {"market_open": True, "websocket_connected": True, "broker_authenticated": True}


# --- Health -------------------------------------------------------------------

async def test_health(client):
    response = await client.get("/api/v1/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_ready(client):
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"] == {"database": "healthy"}


# --- Runs ---------------------------------------------------------------------

async def test_create_run_precheck_failure_is_a_result(client):
    response = await client.post(
        "/api/v1/runs", json={"task": "Analyse NIFTY", "context": {"market_open": False}},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["final_status"] == "precheck_failed"
    assert body["terminal_state"] == "stopped"
    assert body["system_halted"] is True
    assert "market_open" in body["failed_rules"]
    assert body["llm_calls"] == {"used": 0, "budget": 13}
    assert "trace" not in body


async def test_created_run_is_journaled(client):
    created = (await client.post(
        "/api/v1/runs", json={"task": "Analyse NIFTY", "context": {"market_open": False}},
    )).json()

    response = await client.get(f"/api/v1/runs/{created['run_id']}")
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == created["run_id"]
    assert body["final_status"] == "precheck_failed"
    assert body["tool_calls"] == []
    assert body["trace"][0]["event"] == "phase_enter"


async def test_get_unknown_run(client):
    response = await client.get(f"/api/v1/runs/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


async def test_get_run_bad_id(client):
    response = await client.get("/api/v1/runs/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_create_run_task_too_short(client):
    response = await client.post("/api/v1/runs", json={"task": "ab"})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["field"] == "body.task"


async def test_create_run_whitespace_task(client):
    response = await client.post("/api/v1/runs", json={"task": "     "})
    assert response.status_code == 400


# --- Tools --------------------------------------------------------------------

async def test_list_tools(client):
    body = (await client.get("/api/v1/tools")).json()
    assert body["dry_run"] is True
    names = {t["name"] for t in body["tools"]}
    assert len(names) == 14
    assert "orders.super.place" in names


async def test_direct_tool_call(client, broker):
    response = await client.post(
        "/api/v1/tools/market.instrument.find/call", json={"args": {"symbol": "nifty"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["outcome"]["status"] == "success"
    assert body["context"]["symbol"] == "NIFTY"
    assert broker.called() == ["market.instrument.find"]


async def test_direct_tool_call_precondition_outcome(client):
    response = await client.post("/api/v1/tools/options.chain.fetch/call", json={})
    assert response.status_code == 200
    assert response.json()["outcome"]["error_code"] == "PRECONDITION_FAILED"


async def test_direct_tool_call_with_prior_tools(client, broker):
    body = {
        "args": {"interval": "15"},
        "context": {"instrument": {"security_id": "13", "exchange_segment": "IDX_I"}},
    }
    refused = (await client.post("/api/v1/tools/market.history.intraday/call", json=body)).json()
    assert refused["outcome"]["error_code"] == "PRECONDITION_FAILED"

    response = await client.post(
        "/api/v1/tools/market.history.intraday/call",
        json={**body, "called_tools": ["market.instrument.find"]},
    )
    assert response.status_code == 200
    result = response.json()
    assert result["outcome"]["status"] == "success"
    assert "candles_15m" in result["context"]
    assert broker.called() == ["market.history.intraday"]


async def test_direct_tool_call_bad_phase(client):
    response = await client.post(
        "/api/v1/tools/market.instrument.find/call", json={"phase": "trading"},
    )
    assert response.status_code == 400


# --- System -------------------------------------------------------------------

async def test_system_status(client):
    body = (await client.get("/api/v1/system/status")).json()
    assert body["halted"] is False
    assert body["loss_today"] == 0.0
    assert body["max_daily_loss"] == 5_000.0


async def test_daily_loss_halts_and_reset_clears(client):
    pnl = (await client.post("/api/v1/system/pnl", json={"pnl": -6_000})).json()
    assert pnl["loss_today"] == 6_000.0
    assert pnl["remaining"] == 0.0

    run = (await client.post("/api/v1/runs", json={"task": "Analyse NIFTY", "context": READY})).json()
    assert run["final_status"] == "precheck_failed"
    assert run["failed_rules"] == ["max_daily_loss_breached"]
    assert run["alert"]["phase"] == "precheck"

    ready = await client.get("/api/v1/health/ready")
    assert ready.status_code == 503
    assert ready.json()["reason"] == "system_halted"

    status = (await client.post("/api/v1/system/reset")).json()
    assert status["halted"] is False
    assert (await client.get("/api/v1/health/ready")).status_code == 200


async def test_pnl_requires_number(client):
    response = await client.post("/api/v1/system/pnl", json={"pnl": "lots"})
    assert response.status_code == 400
