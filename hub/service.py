"""
Hub Service Entrypoint

FastAPI application exposing the dashboard read model and forwarding
operator intents (select, execute, refresh) into it.

Endpoints:
- GET  /hub/status: full dashboard snapshot
- GET  /hub/applications: application list, optional ?filter=
- POST /hub/select/{name}: select an application
- POST /hub/actions/{action}: run an action on the selected application
- GET  /hub/actions/active: in-flight action keys
- GET  /hub/notifications: drain pending notifications
- POST /hub/refresh: reload applications, server data and health
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from hub import config
from hub.api_client import DeploymentClient, ServerClient
from hub.auth import AuthSession
from hub.dashboard import Dashboard, describe
from hub.models import ApplicationConfig, DashboardSnapshot, LiveStatus, Notification
from shared.errors import HubError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hub", tags=["hub"])


# Injected by the lifespan handler (or by tests)
_dashboard: Optional[Dashboard] = None


def set_dashboard(dashboard: Optional[Dashboard]):
    """Set dashboard reference (called on startup)"""
    global _dashboard
    _dashboard = dashboard


def get_dashboard() -> Dashboard:
    if _dashboard is None:
        raise HTTPException(503, "Dashboard not running")
    return _dashboard


class ApplicationView(BaseModel):
    """Application row as rendered in the list"""
    application: ApplicationConfig
    description: str
    live_status: Optional[LiveStatus] = None


class ActionAccepted(BaseModel):
    key: str
    application_name: str
    action: str


@router.get("/status", response_model=DashboardSnapshot)
def get_status():
    return get_dashboard().snapshot()


@router.get("/applications", response_model=List[ApplicationView])
def list_applications(filter_text: str = Query("", alias="filter")):
    dashboard = get_dashboard()
    live = dashboard.health.live_statuses()
    return [
        ApplicationView(application=app, description=describe(app), live_status=live.get(app.name))
        for app in dashboard.filtered_applications(filter_text)
    ]


@router.post("/select/{name}", response_model=ApplicationConfig)
def select_application(name: str):
    try:
        return get_dashboard().select_app(name)
    except KeyError:
        raise HTTPException(404, f"Application not found: {name}")


@router.post("/actions/{action}", status_code=202, response_model=ActionAccepted)
def run_action(action: str, lines: Optional[int] = None):
    dashboard = get_dashboard()
    app = dashboard.selected_app
    if app is None:
        raise HTTPException(409, "No application selected")

    future = dashboard.submit_action(action, lines, application=app)
    if future is None:
        raise HTTPException(409, f"{action} already in progress for {app.name}")
    return ActionAccepted(key=f"{app.name}:{action}", application_name=app.name, action=action)


@router.get("/actions/active", response_model=List[str])
def active_actions():
    return get_dashboard().dispatcher.active_keys()


@router.get("/notifications", response_model=List[Notification])
def drain_notifications():
    return get_dashboard().drain_notifications()


@router.post("/refresh", response_model=DashboardSnapshot)
def refresh():
    dashboard = get_dashboard()
    dashboard.refresh()
    return dashboard.snapshot()


def build_dashboard() -> Dashboard:
    """Create clients and dashboard from environment configuration"""
    auth = AuthSession(config.API_BASE_URL, token=config.API_TOKEN, timeout=config.REQUEST_TIMEOUT)
    if not auth.is_authenticated() and config.LOGIN_EMAIL and config.LOGIN_PASSWORD:
        try:
            auth.login(config.LOGIN_EMAIL, config.LOGIN_PASSWORD)
        except HubError as e:
            logger.error(f"Startup login failed: {e}")

    deployment_client = DeploymentClient(config.API_BASE_URL, auth.token, timeout=config.REQUEST_TIMEOUT)
    server_client = ServerClient(config.API_BASE_URL, auth.token, timeout=config.REQUEST_TIMEOUT)
    return Dashboard(deployment_client, server_client, auth=auth)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting hub dashboard...")
    # Startup login and the first application load block on HTTP
    dashboard = await run_in_threadpool(build_dashboard)
    await run_in_threadpool(dashboard.start)
    set_dashboard(dashboard)
    logger.info("Hub service startup complete")
    try:
        yield
    finally:
        logger.info("Stopping hub dashboard...")
        set_dashboard(None)
        await run_in_threadpool(dashboard.close)
        logger.info("Hub service shutdown complete")


app = FastAPI(title="AdminHub Service", lifespan=lifespan)
app.include_router(router)


@app.get("/")
def root():
    return {"service": "adminhub", "status": "running"}
