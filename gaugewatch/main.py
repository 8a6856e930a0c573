#!/usr/bin/env python3
"""
Gaugewatch - Main Entry Point

Operator dashboard for an industrial process:
- up to 10 USB cameras started one at a time
- per-camera capture, PNG export and gauge OCR
- simulated process values (pressures, flow, pump, valves)
- HTTP operator surface
"""

import asyncio
import json
import logging
import os
import re
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import yaml

from .log_collector import LogCollector, setup_log_collector
from .process import ProcessModel
from .recognition import RecognitionClient
from .settings import settings
from .vision import CameraGrid, DirectoryExportSink, MediaBackend, OpenCVBackend, StreamProfile


class Dashboard:
    """
    Composes the camera grid, the recognition client and the process model.

    Przepływ:
    1. Config (YAML + GAUGEWATCH__ env overrides)
    2. Recognition client (Gemini / Ollama)
    3. Camera grid: enumerate -> stagger -> feeds
    4. Web server + process timer until stop()
    """

    def __init__(self, config_path: str = "config/config.yaml", backend: Optional[MediaBackend] = None):
        self.logger = logging.getLogger("dashboard")
        self.config = self._load_config(config_path)
        self._apply_env_overrides(self.config)

        self.log_collector: LogCollector = setup_log_collector()

        # Komponenty
        self.backend = backend
        self.recognizer: Optional[RecognitionClient] = None
        self.grid: Optional[CameraGrid] = None
        self.process: Optional[ProcessModel] = None

        # Stan
        self.running = False
        self._server = None

    def _load_config(self, path: str) -> dict:
        """Load the YAML config, or defaults from the environment."""
        config_file = Path(path)
        if config_file.exists():
            with open(config_file, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}

        self.logger.info(f"No config at {path}, using defaults")
        return {
            "logging": {"level": settings.LOG_LEVEL},
            "cameras": {
                "max": settings.CAMERAS_MAX,
                "stagger_delay": settings.CAMERAS_STAGGER_DELAY,
                "width": settings.CAMERAS_WIDTH,
                "height": settings.CAMERAS_HEIGHT,
                "fps": settings.CAMERAS_FPS,
            },
            "capture": {"export_dir": settings.CAPTURE_EXPORT_DIR},
            "recognition": {
                "provider": settings.RECOGNITION_PROVIDER,
                "model": settings.RECOGNITION_MODEL,
                "base_url": settings.RECOGNITION_BASE_URL,
                "timeout": settings.RECOGNITION_TIMEOUT,
            },
            "process": {"interval": settings.PROCESS_INTERVAL},
            "web": {"host": settings.WEB_HOST, "port": settings.WEB_PORT},
        }

    def _apply_env_overrides(self, config: dict) -> None:
        prefix = "GAUGEWATCH__"
        for key, value in os.environ.items():
            if not key.startswith(prefix):
                continue
            path = [p.lower() for p in key[len(prefix):].split("__") if p]
            if not path:
                continue
            self._set_config_path(config, path, self._coerce_env_value(value))

    def _set_config_path(self, config: dict, path: list, value: Any) -> None:
        node: Any = config
        for part in path[:-1]:
            if not isinstance(node, dict):
                return
            if part not in node or not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]

        if isinstance(node, dict):
            node[path[-1]] = value

    def _coerce_env_value(self, raw: str) -> Any:
        val = raw.strip()
        low = val.lower()
        if low in {"true", "false"}:
            return low == "true"

        if re.match(r"^-?\d+$", val):
            return int(val)
        if re.match(r"^-?\d+\.\d+$", val):
            return float(val)

        if (val.startswith("{") and val.endswith("}")) or (val.startswith("[") and val.endswith("]")):
            try:
                return json.loads(val)
            except ValueError:
                return val

        return val

    def section(self, name: str) -> dict:
        return self.config.get(name) or {}

    # =========================================
    # LIFECYCLE
    # =========================================

    async def initialize(self):
        """Create components and start camera discovery."""
        self.logger.info("Initializing dashboard...")

        self.logger.info("  → Recognition client...")
        recognition_cfg = dict(self.section("recognition"))
        if not recognition_cfg.get("api_key"):
            recognition_cfg["api_key"] = settings.RECOGNITION_API_KEY
        self.recognizer = RecognitionClient(recognition_cfg)
        await self.recognizer.initialize()

        self.logger.info("  → Camera grid...")
        cameras = self.section("cameras")
        profile = StreamProfile(
            width=int(cameras.get("width", 320)),
            height=int(cameras.get("height", 240)),
            frame_rate=cameras.get("fps", 15),
        )
        export_dir = self.section("capture").get("export_dir", "captures")
        self.grid = CameraGrid(
            self.backend if self.backend is not None else OpenCVBackend(),
            recognizer=self.recognizer,
            export_sink=DirectoryExportSink(export_dir),
            max_cameras=int(cameras.get("max", 10)),
            stagger_delay=float(cameras.get("stagger_delay", 1.0)),
            profile=profile,
        )
        await self.grid.start()

        self.logger.info("  → Process model...")
        self.process = ProcessModel()
        self.process.tick()

        self.logger.info("✅ Dashboard initialized")

    async def run(self):
        """Serve the operator surface and tick the process model until stopped."""
        from .web.server import create_server

        self.running = True
        web_cfg = self.section("web")
        self._server = create_server(
            self,
            host=web_cfg.get("host", "0.0.0.0"),
            port=int(web_cfg.get("port", 8080)),
        )

        tasks = [
            asyncio.create_task(self._server.serve(), name="web"),
            asyncio.create_task(
                self.process.run(float(self.section("process").get("interval", 2.0))),
                name="process",
            ),
        ]

        self.logger.info(f"🌐 Dashboard at http://{web_cfg.get('host', '0.0.0.0')}:{web_cfg.get('port', 8080)}")

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self.stop()
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def stop(self):
        """Ask the run loop to finish."""
        self.running = False
        if self.process:
            self.process.stop()
        if self._server is not None:
            self._server.should_exit = True

    async def cleanup(self):
        """Release cameras and close the recognition client."""
        if self.grid:
            await self.grid.close()
        if self.recognizer:
            await self.recognizer.cleanup()

    def status(self) -> dict:
        return {
            "status": "ok",
            "running": self.running,
            "recognition_available": self.recognizer.available if self.recognizer else False,
            "recognition_provider": self.recognizer.provider if self.recognizer else None,
            "grid": self.grid.status() if self.grid else None,
        }


def setup_logging(level: str = "INFO"):
    """Logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)-15s | %(message)s",
        datefmt="%H:%M:%S"
    )


def print_banner():
    """Startup banner."""
    print("""
    ╔═══════════════════════════════════════════════════════════╗
    ║                                                           ║
    ║   📟 GAUGEWATCH                                           ║
    ║   Multi-camera gauge monitoring dashboard                 ║
    ║                                                           ║
    ╚═══════════════════════════════════════════════════════════╝
    """)


async def main():
    """Main entry point."""
    print_banner()

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("main")

    config_path = sys.argv[1] if len(sys.argv) > 1 else "config/config.yaml"
    dashboard = Dashboard(config_path)

    level = str(dashboard.section("logging").get("level", settings.LOG_LEVEL)).upper()
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Stop signal received...")
        asyncio.create_task(dashboard.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await dashboard.initialize()
        await dashboard.run()
    except Exception as e:
        logger.exception(f"Error: {e}")
    finally:
        await dashboard.cleanup()
        logger.info("Gaugewatch stopped.")


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
