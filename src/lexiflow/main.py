"""
Main entry point for the Lexiflow server.
"""

import argparse
import sys

import uvicorn

from .config.settings import get_settings
from .core.determinism import ensure_deterministic_startup
from .observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

VERSION = "1.0.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lexiflow chat and workflow server")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--workers", type=int, default=None, help="Number of workers")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--version", action="store_true", help="Show version")
    return parser


def main(argv=None):
    """Parse CLI overrides, run deterministic startup and serve the API."""
    if argv is None:
        argv = []
    args = build_parser().parse_args(argv)

    if args.version:
        print(f"Lexiflow v{VERSION}")
        return

    settings = get_settings()
    log_level = args.log_level or settings.observability.log_level
    setup_logging(log_level)

    seed, config_hash = ensure_deterministic_startup(settings)
    logger.info(
        "Lexiflow initialized",
        seed=seed,
        config_hash=config_hash[:16] + "...",
        environment=settings.environment,
    )

    reload = args.reload or settings.api.reload
    uvicorn.run(
        "lexiflow.api.server:app",
        host=args.host or settings.api.host,
        port=args.port or settings.api.port,
        reload=reload,
        workers=1 if reload else (args.workers or settings.api.workers),
        log_level=log_level.lower(),
    )


def cli_main():
    """CLI entry point."""
    try:
        main(sys.argv[1:])
        sys.exit(0)
    except KeyboardInterrupt:
        print("\nLexiflow shutdown")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        print(f"Startup failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
