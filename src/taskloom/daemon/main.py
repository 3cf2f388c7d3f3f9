"""Taskloom daemon: owns the scheduler and optionally serves the local app."""

from __future__ import annotations

import argparse
import logging
import os
import signal
from threading import Event

from src.taskloom.core.config_loader import clear_config_cache
from src.taskloom.runtime.service import get_runtime_service

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
SHUTDOWN_POLL_SEC = 0.5

logger = logging.getLogger("taskloom.daemon")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def wait_for_shutdown(stop_event: Event, *, poll_sec: float = SHUTDOWN_POLL_SEC) -> None:
    """Block until `stop_event` is set or SIGINT/SIGTERM arrives."""
    previous = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}

    def _request_stop(signum, _frame) -> None:  # type: ignore[no-untyped-def]
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        stop_event.set()

    for sig in previous:
        signal.signal(sig, _request_stop)
    try:
        # Short waits keep the main thread responsive to signals.
        while not stop_event.wait(timeout=poll_sec):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def serve_app(*, host: str, port: int) -> None:
    import uvicorn

    # log_config=None keeps uvicorn on the daemon's logging setup.
    uvicorn.run("app.main:app", host=host, port=port, reload=False, log_config=None)


def run_daemon(
    *,
    with_app: bool = True,
    host: str = "127.0.0.1",
    port: int = 8000,
    stop_event: Event | None = None,
) -> int:
    runtime = get_runtime_service()
    started = runtime.start(start_scheduler_if_enabled=True, source="daemon")
    logger.info("Runtime started, scheduler_started=%s", started.get("scheduler_started"))
    try:
        if with_app:
            logger.info("Serving app on http://%s:%s", host, port)
            serve_app(host=host, port=port)
        else:
            wait_for_shutdown(stop_event or Event())
    finally:
        stopped = runtime.stop(source="daemon")
        abandoned = stopped.get("abandoned_task_ids") or []
        if abandoned:
            logger.warning("Stopped with executions still running: %s", abandoned)
        logger.info("Runtime stopped")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the Taskloom scheduler daemon.")
    parser.add_argument("--config", help="Path to a config JSON file (overrides TASKLOOM_CONFIG_PATH).")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-app", action="store_true", help="Run only the scheduler, without the web app.")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    if args.config:
        os.environ["TASKLOOM_CONFIG_PATH"] = args.config
        clear_config_cache()
    return run_daemon(with_app=not args.no_app, host=args.host, port=args.port)


if __name__ == "__main__":
    raise SystemExit(main())
