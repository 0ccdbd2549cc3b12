"""
Entry point for the demo API server.

Can be called with: python -m ai_demos [--host HOST] [--port PORT]
"""

import argparse
import logging

import uvicorn

from .server import Settings, create_app


def main() -> None:
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="AI SDK UI demo endpoints")
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Interface to bind (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to run the server on (default: {settings.port})",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info(
        "Serving on http://%s:%d (provider: %s)",
        args.host,
        args.port,
        settings.ai_provider,
    )
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
