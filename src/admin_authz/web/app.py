"""
Form Gateway (HTTP)

FastAPI adapter exposing the configure page and the computer diagnostics
through the AccessEnforcementGateway. Identity comes from a trusted proxy
in front of the app: the user name and comma-separated groups are read from
request headers, and a request without them is anonymous.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from ..core.auth import builtin
from ..core.auth.principal import Principal
from ..core.bootstrap import EngineContext
from ..core.errors import AccessDenied, FormValidationError, UnknownResource
from ..core.system_config import ENTITY_TYPE as SYSTEM_ENTITY

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


# Response models
class FieldValueResponse(BaseModel):
    value: str
    editable: bool


class ConfigureResponse(BaseModel):
    entity_type: str
    fields: dict[str, FieldValueResponse]


def create_app(context: EngineContext) -> FastAPI:
    """
    Create the web app for an engine context.

    Args:
        context: Bootstrapped engine (gateway, controller, config)
    """
    app = FastAPI(title="admin-authz", docs_url=None, redoc_url=None)
    app.state.engine = context
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    gateway = context.gateway
    controller = context.controller
    web_config = context.config.web

    def get_principal(request: Request) -> Principal:
        """Resolve the principal from proxy headers"""
        user = request.headers.get(web_config.user_header, "").strip()
        if not user:
            return Principal.anonymous()
        groups = request.headers.get(web_config.groups_header, "")
        return Principal.of(user, groups=(g.strip() for g in groups.split(",")))

    @app.exception_handler(AccessDenied)
    async def access_denied_handler(request: Request, exc: AccessDenied):
        # No detail about which permission was missing
        return PlainTextResponse("Forbidden", status_code=403)

    @app.exception_handler(UnknownResource)
    async def unknown_resource_handler(request: Request, exc: UnknownResource):
        return PlainTextResponse("Not Found", status_code=404)

    def render_configure(request: Request, principal: Principal, status_code: int = 200, **extra):
        view = gateway.render_view(principal, controller, SYSTEM_ENTITY)
        return templates.TemplateResponse(
            request,
            "configure.html",
            {
                "title": "Configure System",
                "principal": principal,
                "view": view,
                "action": str(request.url_for("configure_submit")),
                **extra,
            },
            status_code=status_code,
        )

    # ==================== Configure page ====================

    @app.get("/configure", response_class=HTMLResponse, name="configure_page")
    async def configure_page(request: Request, principal: Principal = Depends(get_principal)):
        """Configuration form with only the fields the principal may see"""
        return render_configure(request, principal)

    @app.post("/configure", response_class=HTMLResponse, name="configure_submit")
    async def configure_submit(request: Request, principal: Principal = Depends(get_principal)):
        """Apply the editable part of a configuration form"""
        form = await request.form()
        try:
            gateway.apply_submission(principal, controller, SYSTEM_ENTITY, dict(form.items()))
        except FormValidationError as e:
            return render_configure(request, principal, status_code=400, error=str(e))
        return render_configure(request, principal, saved=True)

    @app.get("/api/configure", response_model=ConfigureResponse, name="configure_json")
    async def configure_json(principal: Principal = Depends(get_principal)):
        """Same filtered view as the form, as JSON"""
        return ConfigureResponse(**gateway.render_view(principal, controller, SYSTEM_ENTITY).to_dict())

    # ==================== Computers ====================

    @app.get("/computer/{name}/dumpExportTable", response_class=PlainTextResponse)
    async def dump_export_table(name: str, principal: Principal = Depends(get_principal)):
        """Export table diagnostics; administrators only"""
        try:
            computer = controller.get_computer(name)
        except UnknownResource:
            # Only callers who could see a real computer learn that this one is missing
            gateway.require(principal, controller, builtin.ADMINISTER)
            raise
        gateway.require(principal, computer, builtin.ADMINISTER)
        return PlainTextResponse(computer.export_table())

    return app
