from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from invoice_intake.api.errors import pipeline_error_handler
from invoice_intake.api.router import router as api_router
from invoice_intake.bootstrap import bootstrap
from invoice_intake.core.logging import RequestContextMiddleware
from invoice_intake.modules.pipeline.errors import PipelineError


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        bootstrap()
        yield

    app = FastAPI(title="Invoice Intake", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.include_router(api_router)
    return app


app = create_app()
