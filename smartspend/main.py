"""
Command-line entry point for the SmartSpend governance layer.

Runs one governed AI insights call for a user and prints the result:

    python -m smartspend.main <user_id> [config.yaml]
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

from smartspend.config import Configuration
from smartspend.governance_service import GovernanceService
from smartspend.logging_utils import configure_logging


async def main(argv: list[str] | None = None) -> int:
    """Main entry point - one insights request with graceful cleanup."""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print("usage: smartspend <user_id> [config.yaml]", file=sys.stderr)
        return 2

    user_id = args[0]
    config = Configuration(args[1] if len(args) > 1 else None)

    logging_config = config.get_logging_config()
    configure_logging(
        logging_config.get("level", "INFO"), logging_config.get("format")
    )

    service = GovernanceService.from_configuration(config)
    try:
        async with service:
            response = await service.insights_for(user_id)
            print(json.dumps({
                "success": response.success,
                "data": response.data,
                "error": response.error,
                "rate_limit": (
                    response.rate_limit.to_headers() if response.rate_limit else None
                ),
            }, indent=2))
            logging.info(f"Service statistics: {service.get_statistics()}")
            return 0 if response.success else 1
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")
        return 130
    except Exception as e:
        logging.error(f"Application error: {e}")
        raise
    finally:
        logging.info("Application shutdown complete")


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
