"""TradeDesk — application entry point.

Boots the FastAPI internal server and provides the CLI entry point that
runs reconciliation and the market refresh loop alongside it.
"""

import logging

from fastapi import FastAPI

from tradedesk.api.routers import router

app = FastAPI(title="TradeDesk Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("tradedesk")


@app.get("/health")
async def health():
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and start the desk."""
    import argparse
    import asyncio
    import signal

    from tradedesk.api.routers import configure_routers
    from tradedesk.cli.report import print_pnl_report
    from tradedesk.config import load_config
    from tradedesk.desk import TradeDesk

    parser = argparse.ArgumentParser(description="TradeDesk trading dashboard core")
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Run reconciliation without the API server",
    )
    parser.add_argument(
        "--report",
        action="store_true",
        help="Print the P&L report and exit",
    )
    parser.add_argument("--env", help="Path to a .env file")
    args = parser.parse_args()

    config = load_config(args.env)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    desk = TradeDesk.build(config)

    if args.report:
        print_pnl_report(desk.pnl())
        return

    configure_routers(desk)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        desk.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.no_api:
        asyncio.run(_run_desk_only(desk))
    else:
        asyncio.run(_run_desk(desk, config.api_port))


async def _run_desk(desk, port: int = 8080) -> None:
    """Start the API server and the desk loops concurrently."""
    import asyncio

    import uvicorn

    logger.info(
        "Starting TradeDesk with broker(s): %s",
        ", ".join(b.value for b in desk.settings.active_brokers),
    )

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        try:
            await server.serve()
        finally:
            desk.stop()

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        desk.run(),
        return_exceptions=True,
    )
    logger.info("TradeDesk stopped. Results: %s", results)


async def _run_desk_only(desk) -> None:
    logger.info("Starting TradeDesk (no API).")
    await desk.run()


if __name__ == "__main__":
    _run_cli()
