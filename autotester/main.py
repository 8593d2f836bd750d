import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from pymongo.errors import PyMongoError

from autotester.api.auth.auth import router as auth_router
from autotester.api.engine.engine_controller import router as engine_router
from autotester.api.testplans.testplan_controller import router as testplan_router
from autotester.config import CORS_ORIGINS, LOG_LEVEL
from autotester.run_utils.db import ensure_indexes, get_database

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_database())
    except PyMongoError as e:
        # the API still serves; queries fall back to collection scans
        logger.error("Could not ensure MongoDB indexes: %s", e)
    yield


app = FastAPI(lifespan=lifespan)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="AutoTester API",
        version="1.0.0",
        description="Documentation-driven test plan generation and run tracking",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "OAuth2PasswordBearer": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        },
        "EngineToken": {
            "type": "apiKey",
            "in": "header",
            "name": "X-Engine-Token",
        },
    }
    for route, path in openapi_schema["paths"].items():
        scheme = "EngineToken" if route.startswith("/api/engine") else "OAuth2PasswordBearer"
        for method in path.values():
            method["security"] = [{scheme: []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(testplan_router)
app.include_router(engine_router)


def run():
    uvicorn.run("autotester.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
