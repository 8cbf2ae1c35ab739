"""Trade autopilot — application entry point.

Boots the FastAPI internal server alongside the autopilot loop and the
order-sink forwarder.
"""

import logging

from fastapi import FastAPI

from autopilot.api.routers import router

app = FastAPI(title="Trade Autopilot Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("autopilot")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments, wire the engine and run until interrupted."""
    import argparse
    import asyncio
    import signal

    from autopilot.api.routers import configure_routers
    from autopilot.broker.client import BackendClient
    from autopilot.cli.dashboard import print_status
    from autopilot.config import load_config
    from autopilot.engine import AutopilotEngine
    from autopilot.repos.audit_repo import AuditRepo
    from autopilot.repos.db import init_db
    from autopilot.repos.snapshot_repo import SnapshotRepo

    parser = argparse.ArgumentParser(description="Trade autopilot")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the autopilot without the API server",
    )
    parser.add_argument(
        "--max-ticks",
        type=int,
        default=0,
        help="Stop after this many ticks (0 = unlimited)",
    )
    args = parser.parse_args()

    config = load_config(args.env_file)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)

    client = BackendClient(config)
    audit_repo = AuditRepo(config.db_path)
    engine = AutopilotEngine(
        config,
        client,
        snapshot_store=SnapshotRepo(config.db_path),
        audit_repo=audit_repo,
    )
    configure_routers(engine=engine, audit_repo=audit_repo)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping gracefully.")
        engine.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.engine_only:
        asyncio.run(_run_engine_only(engine, client, args.max_ticks))
    else:
        asyncio.run(_run_with_api(engine, client, config.health_port, args.max_ticks))

    print_status(engine.status())


async def _run_engine_only(engine, client, max_ticks: int = 0) -> None:
    """Run the autopilot loop and the sink forwarder without the API."""
    import asyncio
    import contextlib

    forwarder = asyncio.create_task(engine.sink.forward_to(client))
    logger.info("Starting autopilot (no API).")
    try:
        # stop() cancels the loop task
        with contextlib.suppress(asyncio.CancelledError):
            await engine.launch(max_ticks=max_ticks)
    finally:
        forwarder.cancel()
    if engine.running:
        engine.stop()
    logger.info("Autopilot stopped.")


async def _run_with_api(engine, client, port: int = 8080, max_ticks: int = 0) -> None:
    """Start the API server, the autopilot loop and the sink forwarder."""
    import asyncio
    import contextlib

    import uvicorn

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_engine():
        with contextlib.suppress(asyncio.CancelledError):
            return await engine.launch(max_ticks=max_ticks)
        return []

    # The forwarder outlives a stopped engine so /control/start can resume.
    forwarder = asyncio.create_task(engine.sink.forward_to(client))
    logger.info("Status API available at http://localhost:%d", port)
    try:
        results = await asyncio.gather(
            server.serve(),
            _run_engine(),
            return_exceptions=True,
        )
    finally:
        forwarder.cancel()
    logger.info("Autopilot stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
