"""Router package: collects all API routers and registers them on the FastAPI app."""

from fastapi import FastAPI

from provider.routers import status


def register_all_routers(app: FastAPI):
    app.include_router(status.router)
