import pytest

from admin_browser.admin.controller import AdminRequest, CrudController, FLASH_ERROR, FLASH_SUCCESS
from admin_browser.admin.errors import BadRequest, Forbidden, NotFound
from admin_browser.db.repository import Page, SaveResult
from admin_browser.utils.settings import AdminConfig


class SpyRepository:
    """Records every call; serves canned records keyed by primary key."""

    def __init__(self, descriptor, rows=(), save_result=None, delete_result=True):
        self.descriptor = descriptor
        self.rows = {row["id"]: row for row in rows}
        self.save_result = save_result or SaveResult(True, id=7)
        self.delete_result = delete_result
        self.calls = []

    def _record(self, row):
        return {self.descriptor.alias: dict(row)}

    def create(self):
        return {self.descriptor.alias: {"id": None, "name": None}}

    def count(self):
        return len(self.rows)

    def find(self, kind="all", **kwargs):
        self.calls.append(("find", kind, kwargs))
        if kind == "list":
            return [(k, row.get(self.descriptor.display_field)) for k, row in self.rows.items()]
        return [self._record(row) for row in self.rows.values()]

    def get(self, record_id, contain=None):
        self.calls.append(("get", record_id, contain))
        row = self.rows.get(int(record_id))
        return self._record(row) if row else None

    def paginate(self, page, limit, contain=None):
        self.calls.append(("paginate", page, limit, contain))
        records = [self._record(row) for row in self.rows.values()]
        return Page(records=records, page=page, limit=limit, count=len(records))

    def save_associated(self, payload, **kwargs):
        self.calls.append(("save_associated", payload, kwargs))
        return self.save_result

    def delete(self, record_id, cascade=True):
        self.calls.append(("delete", record_id, cascade))
        return self.delete_result

    def delete_many(self, ids, cascade=True):
        self.calls.append(("delete_many", list(ids), cascade))
        return SaveResult(True, id=[int(i) for i in ids])


class SpyRepositories:
    def __init__(self, registry, **repositories):
        self.registry = registry
        self.repositories = repositories

    def get(self, class_name):
        return self.repositories[class_name]

    def for_descriptor(self, descriptor):
        return self.repositories[descriptor.alias]


def _config(**overrides):
    values = dict(
        paginate_limit=25,
        association_limit=75,
        deletable=True,
        url_prefix="/admin",
        default_redirect="index",
        models=(),
        create_schema=False,
    )
    values.update(overrides)
    return AdminConfig(**values)


@pytest.fixture
def product_repo(registry):
    return SpyRepository(registry.get("catalog.product"), rows=[{"id": 7, "name": "Lamp"}])


@pytest.fixture
def controller(registry, product_repo):
    repositories = SpyRepositories(
        registry,
        Product=product_repo,
        Category=SpyRepository(registry.by_class("Category"), rows=[{"id": 1, "name": "Books"}]),
        Supplier=SpyRepository(registry.by_class("Supplier"), rows=[{"id": 3, "code": "ACME"}]),
    )
    return CrudController(registry.get("catalog.product"), repositories, config=_config())


def _supplier_controller(registry):
    supplier_repo = SpyRepository(registry.get("catalog.supplier"), rows=[{"id": 3, "code": "ACME"}])
    repositories = SpyRepositories(registry, Supplier=supplier_repo)
    return CrudController(registry.get("catalog.supplier"), repositories, config=_config()), supplier_repo


def _calls(repo, name):
    return [call for call in repo.calls if call[0] == name]


def test_unknown_action_is_not_found(controller):
    with pytest.raises(NotFound):
        controller.dispatch("export", AdminRequest())


def test_index_paginates_with_shallow_contain(controller, product_repo):
    result = controller.dispatch("index", AdminRequest(query={"page": "2"}))

    assert _calls(product_repo, "paginate") == [
        ("paginate", 2, 25, {"category": (), "supplier": (), "tags": ()}),
    ]
    assert result.view == "index"
    assert result.variables["results"] == [{"Product": {"id": 7, "name": "Lamp"}}]
    assert result.variables["paginator"]["page"] == 2


def test_index_ignores_junk_page_numbers(controller, product_repo):
    controller.dispatch("index", AdminRequest(query={"page": "last"}))
    assert _calls(product_repo, "paginate")[0][1] == 1


def test_batch_delete_on_index(controller, product_repo):
    result = controller.dispatch("index", AdminRequest("POST", data={"ids": ["7", "8"]}))

    assert _calls(product_repo, "delete_many") == [("delete_many", ["7", "8"], True)]
    assert result.flash.message == "Successfully deleted 2 product records"
    assert result.redirect is None


def test_batch_delete_without_ids_flashes_error(controller, product_repo):
    result = controller.dispatch("index", AdminRequest("POST", data={}))
    assert _calls(product_repo, "delete_many") == []
    assert result.flash.type == FLASH_ERROR


def test_batch_delete_forbidden_before_any_read(registry):
    controller, repo = _supplier_controller(registry)
    with pytest.raises(Forbidden):
        controller.dispatch("index", AdminRequest("POST", data={"ids": [3]}))
    assert repo.calls == []


def test_delete_forbidden_before_any_read(registry):
    controller, repo = _supplier_controller(registry)
    with pytest.raises(Forbidden) as exc:
        controller.dispatch("delete", AdminRequest("POST"), "3")
    assert exc.value.status_code == 403
    assert repo.calls == []


def test_delete_confirmation_page(controller, product_repo):
    result = controller.dispatch("delete", AdminRequest(), "7")

    assert _calls(product_repo, "delete") == []
    assert _calls(product_repo, "get") == [("get", "7", None)]
    assert result.view == "delete"
    assert result.variables["result"] == {"Product": {"id": 7, "name": "Lamp"}}


def test_delete_missing_record(controller):
    with pytest.raises(NotFound):
        controller.dispatch("delete", AdminRequest("POST"), "99")


def test_delete_success_redirects_to_index(controller, product_repo):
    result = controller.dispatch("delete", AdminRequest("POST"), "7")

    assert _calls(product_repo, "delete") == [("delete", 7, True)]
    assert result.redirect == "/admin/catalog.product"
    assert result.flash.message == "Successfully deleted product with ID 7"
    assert result.flash.type == FLASH_SUCCESS


def test_delete_failure_stays_on_page(controller, product_repo):
    product_repo.delete_result = False
    result = controller.dispatch("delete", AdminRequest("POST"), "7")

    assert result.redirect is None
    assert result.flash.message == "Failed to delete product with ID 7"
    assert result.flash.type == FLASH_ERROR
    assert not result.succeeded


def test_create_form_prepares_options(controller):
    result = controller.dispatch("create", AdminRequest())

    assert result.view == "form"
    assert result.variables["data"] == {"Product": {"id": None, "name": None}}
    assert result.variables["categories"] == {1: "1 - Books"}
    assert result.variables["suppliers"] == {3: "3 - ACME"}
    assert result.variables["type_ahead"] == {}
    assert result.flash is None


def test_create_saves_sanitized_payload_and_redirects(controller, product_repo):
    data = {
        "Product": {
            "name": "Lamp",
            "supplier_id": "3",
            "supplier_id_null": "1",
            "category_id_type_ahead": "1 - Books",
            "redirect_to": "read",
        }
    }
    result = controller.dispatch("create", AdminRequest("POST", data=data))

    [(_, payload, kwargs)] = _calls(product_repo, "save_associated")
    assert payload == {"Product": {"name": "Lamp", "supplier_id": None}}
    assert kwargs == {"validate": True, "atomic": True, "deep": True}
    assert result.redirect == "/admin/catalog.product/read/7"
    assert result.flash.message == "Successfully created a new product"
    # Request data is never modified in place
    assert data["Product"]["supplier_id"] == "3"


def test_create_failure_redisplays_coerced_data(controller, product_repo):
    product_repo.save_result = SaveResult(False, errors={"Product.category_id": ["Field required"]})
    data = {"Product": {"name": "Lamp", "supplier_id": "3", "supplier_id_null": "1"}}

    result = controller.dispatch("create", AdminRequest("POST", data=data))

    assert result.redirect is None
    assert result.view == "form"
    assert result.flash.message == "Failed to create a new product"
    assert result.flash.type == FLASH_ERROR
    assert result.variables["validation_errors"] == {"Product.category_id": ["Field required"]}
    assert result.variables["data"] == {"Product": {"name": "Lamp", "supplier_id": None, "supplier_id_null": "1"}}


def test_read_uses_deep_contain(controller, product_repo):
    result = controller.dispatch("read", AdminRequest(), "7")

    [(_, record_id, contain)] = _calls(product_repo, "get")
    assert record_id == "7"
    assert contain["reviews"] == ("product", "author")
    assert contain["detail"] == ("product",)
    assert result.variables["result"]["Product"]["name"] == "Lamp"


def test_read_missing_record(controller):
    with pytest.raises(NotFound) as exc:
        controller.dispatch("read", AdminRequest(), "99")
    assert exc.value.status_code == 404


def test_update_form_uses_shallow_contain(controller, product_repo):
    result = controller.dispatch("update", AdminRequest(), "7")

    [(_, _, contain)] = _calls(product_repo, "get")
    assert contain == {"category": (), "supplier": (), "tags": ()}
    assert result.view == "form"
    assert result.variables["data"] == result.variables["result"]
    assert "categories" in result.variables


@pytest.mark.parametrize("method", ["POST", "PUT"])
def test_update_injects_primary_key(controller, product_repo, method):
    data = {"Product": {"id": 12, "name": "Desk lamp", "redirect_to": "update"}}
    result = controller.dispatch("update", AdminRequest(method, data=data), "7")

    [(_, payload, _)] = _calls(product_repo, "save_associated")
    assert payload == {"Product": {"id": 7, "name": "Desk lamp"}}
    assert result.redirect == "/admin/catalog.product/update/7"
    assert result.flash.message == "Successfully updated product with ID 7"


def test_update_unknown_redirect_falls_back_to_default(registry, product_repo):
    repositories = SpyRepositories(
        registry,
        Product=product_repo,
        Category=SpyRepository(registry.by_class("Category")),
        Supplier=SpyRepository(registry.by_class("Supplier")),
    )
    controller = CrudController(
        registry.get("catalog.product"), repositories, config=_config(default_redirect="read")
    )
    data = {"Product": {"name": "Desk lamp", "redirect_to": "somewhere"}}

    result = controller.dispatch("update", AdminRequest("POST", data=data), "7")

    assert result.redirect == "/admin/catalog.product/read/7"


def test_list_redirect_alias(controller):
    data = {"Product": {"name": "Desk lamp", "redirect_to": "list"}}
    result = controller.dispatch("update", AdminRequest("POST", data=data), "7")
    assert result.redirect == "/admin/catalog.product"


def test_update_failure(controller, product_repo):
    product_repo.save_result = SaveResult(False, errors={"Product.name": ["String should have at most 120 characters"]})
    result = controller.dispatch("update", AdminRequest("POST", data={"Product": {"name": "x" * 200}}), "7")

    assert result.redirect is None
    assert result.flash.message == "Failed to update product with ID 7"
    assert result.variables["data"] == {"Product": {"name": "x" * 200}}
    assert result.variables["result"] == {"Product": {"id": 7, "name": "Lamp"}}


def test_update_missing_record(controller, product_repo):
    with pytest.raises(NotFound):
        controller.dispatch("update", AdminRequest("POST", data={"Product": {"name": "x"}}), "99")
    assert _calls(product_repo, "save_associated") == []


def test_type_ahead_returns_json_results(controller, product_repo):
    result = controller.dispatch("type_ahead", AdminRequest(query={"query": "lam"}))

    assert _calls(product_repo, "find") == [("find", "list", {"search": "lam"})]
    assert result.view_class == "json"
    assert result.layout == "ajax"
    assert result.serialize == "results"
    assert result.variables["results"] == [{"id": 7, "label": "Lamp"}]


def test_type_ahead_searches_the_term_as_typed(controller, product_repo):
    controller.dispatch("type_ahead", AdminRequest(query={"query": " lam "}))
    controller.dispatch("type_ahead", AdminRequest(query={"query": "   "}))

    assert _calls(product_repo, "find") == [
        ("find", "list", {"search": " lam "}),
        ("find", "list", {"search": "   "}),
    ]


@pytest.mark.parametrize("query", [{}, {"query": ""}, {"query": None}])
def test_type_ahead_requires_a_term(controller, query):
    with pytest.raises(BadRequest) as exc:
        controller.dispatch("type_ahead", AdminRequest(query=query))
    assert exc.value.status_code == 400


def test_url_building(controller):
    assert controller.url("index") == "/admin/catalog.product"
    assert controller.url("create") == "/admin/catalog.product/create"
    assert controller.url("read", 7) == "/admin/catalog.product/read/7"
