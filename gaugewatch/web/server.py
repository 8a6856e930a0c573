"""
Web Server for the operator dashboard.

Provides:
- REST API for the camera grid (toggle, capture, OCR, rediscover)
- REST API for the simulated process (pump, valves)
- Embedded HTML interface
"""

import asyncio
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response

from ..errors import FeedBusy, FeedNotActive, FrameUnavailable, GaugewatchError, UnknownFeed

logger = logging.getLogger("web")

TOGGLE_SETTLE_TIMEOUT = 5.0


def create_app(dashboard=None) -> FastAPI:
    """Create FastAPI application."""
    app = FastAPI(
        title="Gaugewatch",
        description="Multi-camera gauge monitoring dashboard",
        version="0.1.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.dashboard = dashboard

    def _grid():
        dash = app.state.dashboard
        if not dash or not dash.grid:
            raise HTTPException(status_code=503, detail="Camera grid not initialized")
        return dash.grid

    def _process():
        dash = app.state.dashboard
        if not dash or not dash.process:
            raise HTTPException(status_code=503, detail="Process model not initialized")
        return dash.process

    def _feed(device_id: str):
        try:
            return _grid().controller(device_id)
        except UnknownFeed as e:
            raise HTTPException(status_code=404, detail=e.message)

    def _grid_view(grid) -> dict:
        return {"status": grid.status(), "slots": grid.render()}

    # =========================================
    # General
    # =========================================

    @app.get("/", response_class=HTMLResponse)
    async def index():
        """Serve main HTML page."""
        return HTMLResponse(content=get_embedded_html())

    @app.get("/api/status")
    async def status():
        """Get system status."""
        dash = app.state.dashboard
        if not dash:
            return {"status": "starting"}
        return dash.status()

    @app.get("/api/settings")
    async def get_settings():
        """Get current settings."""
        from ..settings import settings
        return settings.to_dict()

    @app.get("/api/logs")
    async def get_logs(n: int = 20):
        """Recent log entries with operator hints."""
        from ..log_collector import get_log_collector
        dash = app.state.dashboard
        collector = dash.log_collector if dash else get_log_collector()
        return collector.summary(n)

    # =========================================
    # Camera grid
    # =========================================

    @app.get("/api/feeds")
    async def feeds():
        return _grid_view(_grid())

    @app.post("/api/feeds/rediscover")
    async def rediscover():
        grid = _grid()
        await grid.rediscover()
        return _grid_view(grid)

    @app.post("/api/feeds/{device_id:path}/toggle")
    async def toggle_feed(device_id: str):
        feed = _feed(device_id)
        accepted = feed.toggle()
        try:
            await asyncio.wait_for(feed.wait_settled(), timeout=TOGGLE_SETTLE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Camera {feed.device.label} still settling after toggle")
        return {"accepted": accepted, "feed": feed.snapshot()}

    @app.post("/api/feeds/{device_id:path}/inspect")
    async def inspect_feed(device_id: str):
        feed = _feed(device_id)
        try:
            text = await feed.inspect()
        except (FeedNotActive, FeedBusy) as e:
            raise HTTPException(status_code=409, detail=e.message)
        return {"text": text, "feed": feed.snapshot()}

    @app.get("/api/feeds/{device_id:path}/capture")
    async def capture_feed(device_id: str):
        feed = _feed(device_id)
        try:
            filename, data = await feed.export()
        except (FeedNotActive, FrameUnavailable) as e:
            raise HTTPException(status_code=409, detail=e.message)
        except GaugewatchError as e:
            raise HTTPException(status_code=500, detail=e.message)
        return Response(
            content=data,
            media_type="image/png",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    # =========================================
    # Process
    # =========================================

    @app.get("/api/process")
    async def process_state():
        return _process().snapshot()

    @app.post("/api/process/pump/toggle")
    async def toggle_pump():
        process = _process()
        process.toggle_pump()
        return process.snapshot()["pump"]

    @app.post("/api/process/pump/speed")
    async def pump_speed(payload: dict):
        process = _process()
        if "speed" not in payload:
            raise HTTPException(status_code=400, detail="Missing 'speed' field")
        try:
            process.set_pump_speed(float(payload["speed"]))
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid 'speed' value")
        return process.snapshot()["pump"]

    @app.post("/api/process/valves/{valve_id}")
    async def set_valve(valve_id: int, payload: dict):
        process = _process()
        if "position" not in payload:
            raise HTTPException(status_code=400, detail="Missing 'position' field")
        try:
            valve = process.set_valve(valve_id, float(payload["position"]))
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown valve: {valve_id}")
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid 'position' value")
        return {"id": valve.id, "name": valve.name, "position": valve.position}

    return app


def get_embedded_html() -> str:
    """Return embedded HTML for the operator page."""
    return '''<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Gaugewatch</title>
    <style>
        * { box-sizing: border-box; margin: 0; padding: 0; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #111827;
            color: #e5e7eb;
            padding: 20px;
        }
        h1 { color: #22d3ee; margin-bottom: 16px; }
        h2 { margin: 20px 0 10px; font-size: 18px; }
        .error { background: rgba(200, 50, 50, 0.3); padding: 12px; border-radius: 8px; }
        .grid {
            display: grid;
            grid-template-columns: repeat(auto-fill, minmax(220px, 1fr));
            gap: 12px;
        }
        .card {
            background: rgba(255,255,255,0.05);
            border-radius: 10px;
            padding: 12px;
        }
        .card.placeholder { opacity: 0.4; }
        .state { font-size: 12px; text-transform: uppercase; color: #9ca3af; }
        .state.active { color: #34d399; }
        .state.error_stopped { color: #f87171; }
        .ocr { margin-top: 6px; font-family: monospace; color: #fde68a; }
        .msg { margin-top: 6px; font-size: 12px; color: #f87171; }
        button {
            margin-top: 8px;
            margin-right: 4px;
            padding: 4px 10px;
            border: none;
            border-radius: 6px;
            background: #374151;
            color: #e5e7eb;
            cursor: pointer;
        }
        button:disabled { opacity: 0.4; cursor: default; }
        table { border-collapse: collapse; }
        td { padding: 2px 12px 2px 0; }
    </style>
</head>
<body>
    <h1>📟 Gaugewatch</h1>
    <button onclick="rediscover()">Rediscover cameras</button>
    <div id="grid-error"></div>
    <h2>Cameras</h2>
    <div class="grid" id="grid"></div>
    <h2>Process</h2>
    <div id="process"></div>

    <script>
        const enc = encodeURIComponent;

        async function api(method, path, body) {
            const opts = { method, headers: { 'Content-Type': 'application/json' } };
            if (body !== undefined) opts.body = JSON.stringify(body);
            const res = await fetch(path, opts);
            return res.json();
        }

        function renderSlot(s) {
            if (s.state === 'placeholder') {
                return `<div class="card placeholder"><b>${s.name}</b><div class="state">${s.status}</div></div>`;
            }
            const id = enc(s.device_id);
            const active = s.state === 'active';
            return `<div class="card">
                <b>${s.name}</b>
                <div class="state ${s.state}">${s.state}${s.busy ? ' · OCR…' : ''}</div>
                <button onclick="toggle('${id}')" ${s.ready ? '' : 'disabled'}>${s.desired_on ? 'Turn off' : 'Turn on'}</button>
                <button onclick="inspect('${id}')" ${active && !s.busy ? '' : 'disabled'}>OCR</button>
                <a href="/api/feeds/${id}/capture"><button ${active ? '' : 'disabled'}>Export</button></a>
                ${s.ocr_result ? `<div class="ocr">${s.ocr_result}</div>` : ''}
                ${s.error ? `<div class="msg">${s.error}</div>` : ''}
            </div>`;
        }

        async function refreshGrid() {
            const view = await api('GET', '/api/feeds');
            const err = view.status.error;
            document.getElementById('grid-error').innerHTML = err ? `<div class="error">${err}</div>` : '';
            document.getElementById('grid').innerHTML = err ? '' : view.slots.map(renderSlot).join('');
        }

        async function refreshProcess() {
            const p = await api('GET', '/api/process');
            const rows = p.pressures.map(s => `<tr><td>${s.name}</td><td>${s.value} ${s.unit}</td></tr>`).join('');
            const valves = p.valves.map(v => `<tr><td>${v.name}</td><td>${v.position}%</td></tr>`).join('');
            document.getElementById('process').innerHTML = `
                <table>${rows}<tr><td>Flow rate</td><td>${p.flow_rate}</td></tr>${valves}</table>
                <div>Pump: ${p.pump.status} (${p.pump.speed}%)
                    <button onclick="togglePump()">Toggle pump</button></div>`;
        }

        async function toggle(id) { await api('POST', `/api/feeds/${id}/toggle`); refreshGrid(); }
        async function inspect(id) { await api('POST', `/api/feeds/${id}/inspect`); refreshGrid(); }
        async function rediscover() { await api('POST', '/api/feeds/rediscover'); refreshGrid(); }
        async function togglePump() { await api('POST', '/api/process/pump/toggle'); refreshProcess(); }

        refreshGrid();
        refreshProcess();
        setInterval(refreshGrid, 1000);
        setInterval(refreshProcess, 2000);
    </script>
</body>
</html>'''


def create_server(dashboard=None, host: str = "0.0.0.0", port: int = 8080) -> uvicorn.Server:
    """Build a uvicorn server whose should_exit the caller can flip."""
    app = create_app(dashboard)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info"
    )
    return uvicorn.Server(config)


async def run_server(dashboard=None, host: str = "0.0.0.0", port: int = 8080):
    """Run the web server."""
    server = create_server(dashboard, host, port)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(run_server())
