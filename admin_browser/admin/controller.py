"""
Generic CRUD controller for one administrable entity.

Each action is a single request/response cycle that returns an
``ActionResult``: the view to render with its staged variables, or a
redirect, plus an optional flash message for the presentation layer.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Mapping, Optional

from admin_browser.admin.associations import prepare_associated_data
from admin_browser.admin.containment import deep_contain, shallow_contain
from admin_browser.admin.descriptors import ModelDescriptor
from admin_browser.admin.errors import BadRequest, Forbidden, NotFound
from admin_browser.admin.presenter import Presenter
from admin_browser.admin.sanitizer import REDIRECT_FIELD, coerce_nulls, sanitize
from admin_browser.utils.settings import AdminConfig, get_admin_config

logger = logging.getLogger(__name__)

ACTIONS = ("index", "create", "read", "update", "delete", "type_ahead")
RECORD_ACTIONS = ("read", "update", "delete")
ACTION_ALIASES = {"list": "index"}

FLASH_SUCCESS = "success"
FLASH_ERROR = "error"


@dataclass(frozen=True)
class FlashMessage:
    message: str
    type: str = FLASH_SUCCESS


@dataclass(frozen=True)
class AdminRequest:
    method: str = "GET"
    query: Mapping[str, Any] = field(default_factory=dict)
    data: Mapping[str, Any] = field(default_factory=dict)

    def is_method(self, *methods: str) -> bool:
        return self.method.upper() in {m.upper() for m in methods}


@dataclass
class ActionResult:
    action: str
    view: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    view_class: str = "html"
    layout: str = "default"
    serialize: Optional[str] = None
    flash: Optional[FlashMessage] = None
    redirect: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.flash is None or self.flash.type != FLASH_ERROR


class CrudController:
    def __init__(
        self,
        descriptor: ModelDescriptor,
        repositories,
        *,
        lookup: Optional[Callable[[str], ModelDescriptor]] = None,
        config: Optional[AdminConfig] = None,
    ):
        self.descriptor = descriptor
        self.repositories = repositories
        self.repository = repositories.for_descriptor(descriptor)
        self.lookup = lookup or repositories.registry.by_class
        self.config = config or get_admin_config()
        self.request = AdminRequest()
        self.presenter = Presenter()
        self.action = ""
        self.record_id: Any = None
        self.flash: Optional[FlashMessage] = None

    def dispatch(self, action: str, request: AdminRequest, record_id: Any = None) -> ActionResult:
        if action not in ACTIONS:
            raise NotFound(f"Unknown admin action '{action}'")
        self.before_filter(action, request)
        handler = getattr(self, action)
        if action in RECORD_ACTIONS:
            return handler(record_id)
        return handler()

    def before_filter(self, action: str, request: AdminRequest) -> None:
        """Reset per-request state and force ``*_null`` fields to NULL."""
        self.action = action
        self.presenter = Presenter(view=action)
        self.flash = None
        self.record_id = None
        self.request = replace(request, data=coerce_nulls(request.data))

    # -- actions -------------------------------------------------------------

    def index(self) -> ActionResult:
        """List out and paginate all the records in the model."""
        if self.request.is_method("POST"):
            if not self.descriptor.admin.deletable:
                raise Forbidden()
            self._batch_delete()

        page = self.repository.paginate(
            self._page_number(),
            self.descriptor.admin.paginate_limit,
            contain=shallow_contain(self.descriptor),
        )
        self.presenter.set("results", page.records)
        self.presenter.set("paginator", page.paginator())
        return self._result()

    def create(self) -> ActionResult:
        data = self.repository.create()
        prepare_associated_data(self.descriptor, self.repositories, self.presenter)

        if self.request.is_method("POST"):
            saved = self.repository.save_associated(sanitize(self.request.data), validate=True, atomic=True, deep=True)
            if saved.success:
                self.record_id = saved.id
                self._set_flash("Successfully created a new %s")
                return self._redirect_after()
            self._set_flash("Failed to create a new %s", kind=FLASH_ERROR)
            self.presenter.set("validation_errors", saved.errors)
            data = self.request.data

        self.presenter.set("data", data)
        self.presenter.render("form")
        return self._result()

    def read(self, record_id: Any) -> ActionResult:
        """Read a record and associated records."""
        result = self.repository.get(record_id, contain=deep_contain(self.descriptor, self.lookup))
        if result is None:
            raise NotFound()
        self.record_id = self._record_key(result)
        self.presenter.set("result", result)
        return self._result()

    def update(self, record_id: Any) -> ActionResult:
        result = self.repository.get(record_id, contain=shallow_contain(self.descriptor))
        if result is None:
            raise NotFound()
        self.record_id = self._record_key(result)
        prepare_associated_data(self.descriptor, self.repositories, self.presenter)

        if self.request.is_method("POST", "PUT"):
            payload = sanitize(self.request.data)
            section = dict(payload.get(self.descriptor.alias) or {})
            section[self.descriptor.primary_key] = self.record_id
            payload[self.descriptor.alias] = section

            saved = self.repository.save_associated(payload, validate=True, atomic=True, deep=True)
            if saved.success:
                self._set_flash("Successfully updated %s with ID %s")
                return self._redirect_after()
            self._set_flash("Failed to update %s with ID %s", kind=FLASH_ERROR)
            self.presenter.set("validation_errors", saved.errors)
            data = self.request.data
        else:
            data = result

        self.presenter.set("result", result)
        self.presenter.set("data", data)
        self.presenter.render("form")
        return self._result()

    def delete(self, record_id: Any) -> ActionResult:
        """Delete a record and all associated records after delete confirmation."""
        if not self.descriptor.admin.deletable:
            raise Forbidden()

        result = self.repository.get(record_id)
        if result is None:
            raise NotFound()
        self.record_id = self._record_key(result)

        if self.request.is_method("POST"):
            if self.repository.delete(self.record_id, cascade=True):
                self._set_flash("Successfully deleted %s with ID %s")
                return self._redirect_after()
            self._set_flash("Failed to delete %s with ID %s", kind=FLASH_ERROR)

        self.presenter.set("result", result)
        return self._result()

    def type_ahead(self) -> ActionResult:
        """Query the model for a list of records that match the term."""
        self.presenter.use_json("results")

        term = str(self.request.query.get("query") or "")
        if not term:
            raise BadRequest("A search query is required")

        rows = self.repository.find("list", search=term)
        self.presenter.set("results", [{"id": record_id, "label": label} for record_id, label in rows])
        return self._result()

    # -- helpers -------------------------------------------------------------

    def _batch_delete(self) -> None:
        ids = self.request.data.get("ids")
        section = self.request.data.get(self.descriptor.alias)
        if ids is None and isinstance(section, Mapping):
            ids = section.get("ids")
        if isinstance(ids, (str, int)):
            ids = [ids]
        if not ids:
            self._set_flash("No %s records were selected", kind=FLASH_ERROR)
            return

        deleted = self.repository.delete_many(ids, cascade=True)
        if deleted.success:
            self.flash = FlashMessage(f"Successfully deleted {len(deleted.id)} {self.descriptor.singular_name} records")
        else:
            self._set_flash("Failed to delete the selected %s records", kind=FLASH_ERROR)

    def _page_number(self) -> int:
        try:
            return max(1, int(self.request.query.get("page", 1)))
        except (TypeError, ValueError):
            return 1

    def _record_key(self, record: Mapping[str, Any]) -> Any:
        return record[self.descriptor.alias][self.descriptor.primary_key]

    def _set_flash(self, message: str, record_id: Any = None, kind: str = FLASH_SUCCESS) -> None:
        if record_id is None:
            record_id = self.record_id
        args = (self.descriptor.singular_name.lower(), record_id)[: message.count("%s")]
        self.flash = FlashMessage(message % args, kind)
        if kind == FLASH_ERROR:
            logger.warning("admin_action_failed: model=%s action=%s id=%s", self.descriptor.name, self.action, record_id)

    def url(self, action: str, record_id: Any = None) -> str:
        base = f"{self.config.url_prefix}/{self.descriptor.url_slug}"
        if action != "index":
            base = f"{base}/{action}"
        if record_id is not None:
            base = f"{base}/{record_id}"
        return base

    def _redirect_after(self, action: Optional[str] = None) -> ActionResult:
        """Redirect after a create, update or delete."""
        if not action:
            section = self.request.data.get(self.descriptor.alias) or {}
            action = section.get(REDIRECT_FIELD) if isinstance(section, Mapping) else None
        action = ACTION_ALIASES.get(action, action)
        if action not in ACTIONS:
            action = ACTION_ALIASES.get(self.config.default_redirect, self.config.default_redirect)
        if action not in ACTIONS:
            action = "index"

        record_id = self.record_id if action in RECORD_ACTIONS else None
        logger.info("admin_redirect: model=%s from=%s to=%s id=%s", self.descriptor.name, self.action, action, record_id)
        return self._result(redirect=self.url(action, record_id))

    def _result(self, redirect: Optional[str] = None) -> ActionResult:
        return ActionResult(
            action=self.action,
            view=self.presenter.view,
            variables=dict(self.presenter.variables),
            view_class=self.presenter.view_class,
            layout=self.presenter.layout,
            serialize=self.presenter.serialize,
            flash=self.flash,
            redirect=redirect,
        )
