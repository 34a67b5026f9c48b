"""CLI entry point for SocialPulse."""

import argparse
import asyncio

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="SocialPulse")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument(
        "--no-http",
        action="store_true",
        help="Run the scheduler pipeline without the HTTP server",
    )
    args = parser.parse_args()

    if args.no_http:
        from socialpulse.agent import run_agent

        asyncio.run(run_agent())
        return

    uvicorn.run(
        "socialpulse.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
