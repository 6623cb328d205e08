"""Router package: collects the operator API routers and registers them on the FastAPI app."""

from fastapi import FastAPI

from tracker.routers import monitoring, participants


def register_all_routers(app: FastAPI):
    app.include_router(monitoring.router)
    app.include_router(participants.router)
