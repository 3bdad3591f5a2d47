import asyncio
import signal

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from src.app import GiveawayApplication
from src.core.exceptions.base import GiveawayError
from src.core.logger.logger import logger


async def run() -> None:
    application = GiveawayApplication()
    await application.initialise()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        await application.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(run())
    except GiveawayError as e:
        logger.error("Giveaway ledger stopped", extra={"error": e.to_dict()})
        raise SystemExit(1)
    except Exception as e:
        logger.error(f"Giveaway ledger stopped: {e}", exc_info=True)
        raise SystemExit(1)
