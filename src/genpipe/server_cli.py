"""CLI entry points for the genpipe API server and worker."""

import argparse
import asyncio
import logging
import os


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="genpipe-server",
        description="genpipe API server: asynchronous generation pipeline",
    )
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.add_argument(
        "--local",
        action="store_true",
        help="Local dev mode: SQLite database, in-process job bus and worker, no Redis required",
    )
    args = parser.parse_args(argv)

    if args.local:
        os.environ["GENPIPE_LOCAL_MODE"] = "1"

    import uvicorn

    uvicorn.run("genpipe.main:app", host=args.host, port=args.port)


async def _run_worker(concurrency: int | None) -> None:
    import redis.asyncio as aioredis

    from genpipe.config import settings
    from genpipe.db.engine import create_db_engine, create_session_factory, create_tables
    from genpipe.services.result_store import ResultStore
    from genpipe.workers.consumer import JobWorker
    from genpipe.workers.queue import RedisEventBus

    logger = logging.getLogger("genpipe.worker")
    engine = create_db_engine(settings.effective_database_url)
    redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    store = ResultStore(create_session_factory(engine))
    worker = JobWorker(RedisEventBus(redis), store, concurrency=concurrency)
    try:
        # The worker may come up before any API process has created the tables
        await create_tables(engine)
        await worker.run()
    except asyncio.CancelledError:
        logger.info("Worker cancelled")
    finally:
        await redis.aclose()
        await engine.dispose()


def worker_main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="genpipe-worker",
        description="genpipe job worker: consumes job-start events from Redis",
    )
    parser.add_argument("--concurrency", type=int, default=None, help="Jobs processed at once")
    args = parser.parse_args(argv)

    from genpipe.config import settings
    from genpipe.logging_config import configure_logging

    configure_logging(log_level=settings.log_level, json_output=True)
    try:
        asyncio.run(_run_worker(args.concurrency))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
