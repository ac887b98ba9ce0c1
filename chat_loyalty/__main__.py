"""CLI entry point for chat-loyalty."""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from .config import ConfigurationError, load_config
from .main import LoyaltyApp
from .transport import TransportConnectionError

CONFIG_CANDIDATES = [
    "/etc/chat-loyalty/config.yaml",
    "./config.yaml",
]


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat Loyalty — subs, gift subs and cheers bot")
    parser.add_argument("--config", type=str, help="Path to config.yaml")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--validate-config", action="store_true", help="Validate config and exit without starting")
    return parser.parse_args()


def resolve_config_path(explicit: str | None) -> str | None:
    """Explicit path, else the first existing candidate, else None (env only)."""
    if explicit:
        return explicit
    for candidate in CONFIG_CANDIDATES:
        if Path(candidate).exists():
            return candidate
    return None


async def main_async() -> None:
    args = parse_args()
    setup_logging(args.log_level)
    logger = logging.getLogger("loyalty")

    try:
        config = load_config(resolve_config_path(args.config))
    except ConfigurationError as e:
        logger.error("%s", e)
        sys.exit(1)

    if args.validate_config:
        logger.info("Config is valid.")
        return

    app = LoyaltyApp(config)

    # Signal handling (Unix only; Windows uses KeyboardInterrupt)
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(app.stop()))

    try:
        await app.start()
    except TransportConnectionError as e:
        logger.error("Could not connect: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        await app.stop()


def main() -> None:
    """Sync entry point for pyproject.toml [project.scripts]."""
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
