"""Main entry point for the samlflow application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from samlflow.api.middleware import enforce_login
from samlflow.api.responses import error_page
from samlflow.api.v1 import saml_router
from samlflow.core.errors import LoginFlowError
from samlflow.core.settings import settings
from samlflow.services.host_session import JwtHostSession

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Initialize FastAPI app
app = FastAPI(
    title="samlflow",
    description="SAML login transaction correlation service",
    version=settings.app_version,
)

app.middleware("http")(enforce_login)

# Include API routers
app.include_router(saml_router)


@app.exception_handler(LoginFlowError)
async def login_flow_error_handler(request: Request, exc: LoginFlowError) -> HTMLResponse:
    """Render every terminal login flow error as the generic error page."""
    return error_page(exc)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/", response_model=None)
async def root(request: Request, redirect: str | None = None) -> Response | dict[str, object]:
    """Landing page; replays a location captured before the provider sign-in."""
    host_session = JwtHostSession(request.cookies)
    authenticated = host_session.is_authenticated()
    if (
        authenticated
        and redirect
        and redirect.startswith("/")
        and not redirect.startswith("//")
    ):
        return RedirectResponse(f"{settings.public_base_url}{redirect}", status_code=302)
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "authenticated": authenticated,
        "user": host_session.user_name,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("samlflow.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
