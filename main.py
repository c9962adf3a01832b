"""
lottopipe entry point.

Starts the cache, the maintenance scheduler and a warm cache, then keeps the
event loop alive for the background jobs.
"""

import asyncio
import sys

from loguru import logger

from lottopipe.pipeline import build_pipeline
from lottopipe.services.lottery_cache import read_result
from lottopipe.settings import global_settings


async def main() -> None:
    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level.upper())

    logger.info("Starting lottopipe...")
    pipeline = build_pipeline(global_settings)

    try:
        await pipeline.start(warmup=True)

        result = await read_result(pipeline.lottery.get_latest())
        if result.success:
            draw = result.data
            logger.info(
                f"Latest draw: round {draw.round} ({draw.date}) "
                f"{draw.sorted_numbers} + {draw.bonus}"
            )
        else:
            logger.warning(f"Latest draw unavailable: {result.message}")

        logger.info("lottopipe is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        await pipeline.close()
        logger.info("lottopipe stopped")


if __name__ == "__main__":
    asyncio.run(main())
