"""Presenter: stages view variables and rendering options for one action."""
from __future__ import annotations

from typing import Any, Dict, Optional

VIEW_CLASS_HTML = "html"
VIEW_CLASS_JSON = "json"
LAYOUT_DEFAULT = "default"
LAYOUT_AJAX = "ajax"


class Presenter:
    def __init__(self, view: Optional[str] = None):
        self.view = view
        self.view_class = VIEW_CLASS_HTML
        self.layout = LAYOUT_DEFAULT
        self.serialize: Optional[str] = None
        self.variables: Dict[str, Any] = {}

    def set(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def render(self, view: str) -> None:
        self.view = view

    def use_json(self, serialize: str) -> None:
        """Switch to the JSON view in the ajax layout, serializing one variable."""
        self.view_class = VIEW_CLASS_JSON
        self.layout = LAYOUT_AJAX
        self.serialize = serialize
