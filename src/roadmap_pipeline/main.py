"""
Command line entry point.

    roadmap-pipeline generate assessment.json   # run one assessment, print the result
    roadmap-pipeline serve --port 8000          # start the HTTP API
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import uvicorn
from pydantic import ValidationError

from . import __version__
from .config.container import setup_container
from .config.settings import get_settings
from .core.state import PipelineState
from .observability.logging import get_logger, setup_logging
from .observability.tracing import setup_tracing, shutdown_tracing

logger = get_logger(__name__)


async def run_assessment(payload: dict) -> PipelineState:
    """Run one assessment through a freshly built container."""
    from .api.server import GenerateRequest

    request = GenerateRequest.model_validate(payload)
    container = setup_container(get_settings())
    async with container.lifespan():
        pipeline = container.get("pipeline")
        return await pipeline.run(PipelineState(input=request.to_input()))


def _generate(args) -> int:
    try:
        payload = json.loads(Path(args.input).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read assessment file {args.input}: {e}", file=sys.stderr)
        return 2

    try:
        state = asyncio.run(run_assessment(payload))
    except ValidationError as e:
        print(f"Invalid assessment: {e}", file=sys.stderr)
        return 2

    print(json.dumps(state.summary(), indent=2, default=str))
    return 0 if state.succeeded else 1


def _serve(args) -> int:
    settings = get_settings()
    uvicorn.run(
        "roadmap_pipeline.api.server:app",
        host=args.host or settings.api.host,
        port=args.port or settings.api.port,
        reload=args.reload or settings.api.reload,
    )
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="roadmap-pipeline", description="Roadmap Pipeline")
    parser.add_argument("--version", action="version", version=f"roadmap-pipeline {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate a roadmap for one assessment JSON file")
    gen.add_argument("input", help="Path to the assessment JSON")
    gen.set_defaults(handler=_generate)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None, help="Host to bind to")
    serve.add_argument("--port", type=int, default=None, help="Port to bind to")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload")
    serve.set_defaults(handler=_serve)

    args = parser.parse_args(argv)

    settings = get_settings()
    # stdout carries the generate command's JSON
    setup_logging(settings.observability.log_level, stream=sys.stderr)
    if settings.observability.enable_tracing:
        setup_tracing(
            settings.observability.service_name,
            settings.observability.service_version,
            settings.observability.otlp_endpoint,
        )
    try:
        return args.handler(args)
    finally:
        if settings.observability.enable_tracing:
            shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
