"""TickForge — application entry point.

Boots the FastAPI internal server and provides the CLI entry point that
runs the Deriv session next to it.
"""

import logging

from fastapi import FastAPI

from tickforge.api.routers import router

app = FastAPI(title="TickForge Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("tickforge")

STATUS_INTERVAL_SECONDS = 30.0


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


def warn_if_live(is_virtual: bool) -> bool:
    """Log a prominent warning when the authorized account is real money.

    Returns ``True`` for a real-money account.
    """
    if not is_virtual:
        logger.warning(
            "REAL ACCOUNT — Real money at risk! Trading starts in 5 seconds..."
        )
        return True
    return False


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and start the session (and the API server)."""
    import argparse
    import asyncio

    from tickforge.api.routers import configure_routers
    from tickforge.bot import TradingBot
    from tickforge.config import load_config
    from tickforge.models.trade_config import CONTRACT_FAMILIES, load_trade_config

    parser = argparse.ArgumentParser(description="TickForge Deriv tick-trading bot")
    parser.add_argument("--symbol", help="Underlying symbol, e.g. R_50")
    parser.add_argument(
        "--contract-type",
        choices=sorted(CONTRACT_FAMILIES),
        help="Contract family to trade (default from TRADE_CONTRACT_TYPE)",
    )
    parser.add_argument("--stake", type=float, help="Base stake")
    parser.add_argument("--barrier", help="Barrier digit for digit contracts")
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the trading session without the API server",
    )
    parser.add_argument("--port", type=int, help="API port (default HEALTH_PORT)")
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    trade_config = load_trade_config().with_overrides(
        symbol=args.symbol,
        contract_type=args.contract_type,
        stake=args.stake,
        barrier=args.barrier,
    )
    bot = TradingBot(config, trade_config)
    configure_routers(bot=bot)

    port = args.port or config.health_port
    try:
        if args.engine_only:
            asyncio.run(_run_bot_only(bot))
        else:
            asyncio.run(_run_with_api(bot, port))
    except KeyboardInterrupt:
        logger.info("Shutdown signal received — stopping.")


async def _start_session(bot) -> None:
    import asyncio

    await bot.connect()
    if warn_if_live(bot.is_virtual):
        await asyncio.sleep(5)
    await bot.start_trading()


async def _print_status_loop(bot, interval: float = STATUS_INTERVAL_SECONDS) -> None:
    import asyncio

    from tickforge.cli.dashboard import print_status

    while True:
        await asyncio.sleep(interval)
        print_status(bot.status())


async def _run_bot_only(bot) -> None:
    """Run the trading session without the API server, printing status
    to the console instead."""
    import asyncio

    logger.info("Starting TickForge (no API) on %s.", bot.symbol)
    printer = asyncio.create_task(_print_status_loop(bot))
    try:
        await _start_session(bot)
        await bot.run_forever()
    finally:
        printer.cancel()
        await bot.close()
    logger.info("TickForge stopped.")


async def _run_with_api(bot, port: int = 8080) -> None:
    """Start the API server and the trading session concurrently."""
    import asyncio
    import uvicorn

    logger.info("Starting TickForge on %s.", bot.symbol)

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        await server.serve()

    async def _run_session():
        try:
            await _start_session(bot)
            await bot.run_forever()
        finally:
            await bot.close()
            server.should_exit = True

    logger.info("Status API available at http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        _run_session(),
        return_exceptions=True,
    )
    logger.info("TickForge stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
