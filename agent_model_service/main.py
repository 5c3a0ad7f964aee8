"""
FastAPI app for the agent model service.

Endpoints:
- GET /{address}: compiled interface description of the Agent at `address`
- anything else: 404
"""

from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from web3 import AsyncWeb3

from . import __version__
from .config import ConfigError, ServiceConfig, load_config
from .errors import error_status_code
from .pipeline.context import PipelineContext
from .pipeline.resolver import ModelResolver
from .registry.agent_registry import TEST_ADDRESS, AgentRegistryGateway
from .registry.content_store import ContentStoreGateway
from .schemas import ErrorResponse

LOGGER = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_app(
    config: ServiceConfig,
    web3: Optional[AsyncWeb3] = None,
    store: Optional[ContentStoreGateway] = None,
) -> FastAPI:
    """
    Build the app and everything it shares between requests.

    `web3` and `store` default to clients of the endpoints in `config`;
    tests pass their own.
    """
    context = PipelineContext.from_config(config)
    store = store or ContentStoreGateway(config.ipfs_endpoint)
    registry = AgentRegistryGateway(context, web3=web3)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        context.cache.ensure_layout()
        LOGGER.info(
            "Serving models from %s (IPFS %s, Ethereum %s)",
            context.cache.root,
            config.ipfs_endpoint,
            config.ethereum_endpoint,
        )
        yield
        await store.aclose()

    app = FastAPI(
        title="Agent Model Service",
        version=__version__,
        description="Serves the compiled service interface of SingularityNET Agent contracts.",
        lifespan=lifespan,
    )

    # Browsers call this service directly from dapps.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.context = context
    app.state.registry = registry
    app.state.resolver = ModelResolver(context, store)

    @app.get("/{address}", responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}})
    async def get_model(address: str, request: Request) -> Response:
        """
        Resolve an Agent address to its compiled model JSON.

        `test` skips the chain and is used directly as the metadata hash.
        """
        gateway: AgentRegistryGateway = request.app.state.registry
        resolver: ModelResolver = request.app.state.resolver
        try:
            if address == TEST_ADDRESS:
                metadata_hash = TEST_ADDRESS
            else:
                metadata_hash = await gateway.resolve_metadata_hash(address)
            model_json = await resolver.resolve(metadata_hash)
        except Exception as exc:
            status_code = error_status_code(exc)
            # Internal failures are logged by error_status_code; callers get a generic message.
            message = str(exc) if status_code != 500 else INTERNAL_ERROR_MESSAGE
            return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())
        return Response(content=model_json, media_type="application/json")

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def not_found(request: Request) -> JSONResponse:
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(error=f"{request.method} {target} not found").model_dump(),
        )

    return app


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve compiled Agent model definitions over HTTP.")
    parser.add_argument("config", nargs="?", help="path to a JSON configuration file")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None) -> None:
    """
    Entrypoint for the `model-service` console_script defined in
    pyproject.toml, or `python -m agent_model_service.main [config.json]`.
    """
    import uvicorn

    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    run()
