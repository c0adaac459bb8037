import logging
import os
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from farm_exports import __version__
from farm_exports.routes import router as exports_router
from farm_exports.services import ExportServices, build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(services: Optional[ExportServices] = None, start_workers: bool = True) -> FastAPI:
    """
    Build the API. When ``services`` is given it is used as-is (tests pass
    their own); otherwise the pipeline is assembled from the environment on
    startup.
    """
    app = FastAPI(
        title="Farm Exports API",
        description="Asynchronous PDF, Excel and CSV exports of farm records",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.exports = services

    @app.on_event("startup")
    async def startup_event():
        if app.state.exports is None:
            app.state.exports = build_services()
        exports = app.state.exports
        logger.info(f"Farm Exports API starting on port {os.environ.get('PORT', '8000')}")
        logger.info(f"Export directory: {os.path.abspath(exports.settings.output_dir)}")
        logger.info(f"Job store: {type(exports.store).__name__}")
        if start_workers:
            exports.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.exports is not None and start_workers:
            app.state.exports.stop()
        logger.info("Farm Exports API stopped")

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    app.include_router(exports_router)
    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        "farm_exports.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        reload=False,
    )


if __name__ == "__main__":
    main()
