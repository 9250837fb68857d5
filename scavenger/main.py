import asyncio
import signal
import sys
from typing import Any

from loguru import logger

from scavenger.composition import create_scavenger_dependencies
from scavenger.config.settings import Settings
from scavenger.core import SERVICE_NAME


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def configure_logging(settings: Settings) -> None:
    logger.remove()
    if settings.log_json:
        logger.add(sys.stderr, level=settings.log_level.upper(), serialize=True)
    else:
        logger.add(
            sys.stderr,
            level=settings.log_level.upper(),
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra} {message}",
        )


async def run_scavenger(settings: Settings) -> int:
    dependencies = create_scavenger_dependencies(settings)
    scavenge = asyncio.create_task(dependencies.create_loop().run())

    def request_shutdown() -> None:
        if not scavenge.done():
            _log("shutdown_signal")
            scavenge.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    removed = await scavenge
    _log("scavenger_done", queue=settings.queue_name, removed_count=removed)
    return removed


def main() -> None:
    settings = Settings()
    configure_logging(settings)
    try:
        asyncio.run(run_scavenger(settings))
    except (KeyboardInterrupt, asyncio.CancelledError):
        _log("scavenger_interrupted")
        sys.exit(130)
    except Exception as e:
        logger.exception("scavenger failed: {}", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
