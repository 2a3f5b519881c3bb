"""
Admin CRUD endpoints.

Routes are ``/{model}/{action}[/{record_id}]`` with ``model`` given as
``plugin.model_name``. Rendered actions answer with JSON carrying the view
name, layout, flash message and staged variables; completed mutations answer
``303 See Other`` with the flash message in ``X-Flash-*`` headers.
"""
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse, Response

from admin_browser.admin.controller import ActionResult, AdminRequest, CrudController
from admin_browser.admin.presenter import VIEW_CLASS_JSON
from admin_browser.admin.registry import ModelRegistry, get_registry
from admin_browser.api.deps import get_config, get_controller
from admin_browser.utils.settings import AdminConfig

router = APIRouter(tags=["admin"])


def _admin_request(request: Request, data: Optional[Dict[str, Any]]) -> AdminRequest:
    return AdminRequest(method=request.method, query=dict(request.query_params), data=data or {})


def respond(result: ActionResult) -> Response:
    """Turn an action result into an HTTP response."""
    if result.redirect:
        response = RedirectResponse(result.redirect, status_code=303)
        if result.flash:
            response.headers["X-Flash-Message"] = result.flash.message
            response.headers["X-Flash-Type"] = result.flash.type
        return response

    if result.view_class == VIEW_CLASS_JSON and result.serialize:
        return JSONResponse(jsonable_encoder(result.variables.get(result.serialize)))

    body = {
        "view": result.view,
        "layout": result.layout,
        "flash": asdict(result.flash) if result.flash else None,
    }
    body.update(result.variables)
    return JSONResponse(jsonable_encoder(body))


@router.get("/")
def list_models_endpoint(
    registry: ModelRegistry = Depends(get_registry),
    config: AdminConfig = Depends(get_config),
):
    return [
        {
            "name": d.name,
            "slug": d.url_slug,
            "singular_name": d.singular_name,
            "deletable": d.admin.deletable,
            "url": f"{config.url_prefix}/{d.url_slug}",
        }
        for d in registry.descriptors()
    ]


@router.api_route("/{model}", methods=["GET", "POST"])
def index_endpoint(
    request: Request,
    data: Optional[Dict[str, Any]] = Body(default=None),
    controller: CrudController = Depends(get_controller),
):
    return respond(controller.dispatch("index", _admin_request(request, data)))


@router.api_route("/{model}/create", methods=["GET", "POST"])
def create_endpoint(
    request: Request,
    data: Optional[Dict[str, Any]] = Body(default=None),
    controller: CrudController = Depends(get_controller),
):
    return respond(controller.dispatch("create", _admin_request(request, data)))


@router.get("/{model}/read/{record_id}")
def read_endpoint(
    record_id: str,
    request: Request,
    controller: CrudController = Depends(get_controller),
):
    return respond(controller.dispatch("read", _admin_request(request, None), record_id))


@router.api_route("/{model}/update/{record_id}", methods=["GET", "POST", "PUT"])
def update_endpoint(
    record_id: str,
    request: Request,
    data: Optional[Dict[str, Any]] = Body(default=None),
    controller: CrudController = Depends(get_controller),
):
    return respond(controller.dispatch("update", _admin_request(request, data), record_id))


@router.api_route("/{model}/delete/{record_id}", methods=["GET", "POST"])
def delete_endpoint(
    record_id: str,
    request: Request,
    data: Optional[Dict[str, Any]] = Body(default=None),
    controller: CrudController = Depends(get_controller),
):
    return respond(controller.dispatch("delete", _admin_request(request, data), record_id))


@router.get("/{model}/type_ahead")
def type_ahead_endpoint(
    request: Request,
    controller: CrudController = Depends(get_controller),
):
    return respond(controller.dispatch("type_ahead", _admin_request(request, None)))
