from admin_browser.utils.settings import (
    admin_defaults,
    get_admin_config,
    parse_model_modules,
    refresh_admin_config_cache,
)


def test_defaults_when_env_is_empty():
    config = get_admin_config()
    assert config.paginate_limit == 25
    assert config.association_limit == 75
    assert config.deletable is True
    assert config.url_prefix == "/admin"
    assert config.default_redirect == "index"
    assert config.models == ()
    assert config.create_schema is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("ADMIN_PAGINATE_LIMIT", "10")
    monkeypatch.setenv("ADMIN_ASSOCIATION_LIMIT", "3")
    monkeypatch.setenv("ADMIN_DELETABLE", "off")
    monkeypatch.setenv("ADMIN_URL_PREFIX", "backoffice/")
    monkeypatch.setenv("ADMIN_DEFAULT_REDIRECT", "read")
    refresh_admin_config_cache()

    config = get_admin_config()
    assert config.paginate_limit == 10
    assert config.association_limit == 3
    assert config.deletable is False
    assert config.url_prefix == "/backoffice"
    assert config.default_redirect == "read"
    assert admin_defaults() == {"paginate_limit": 10, "association_limit": 3, "deletable": False}


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("ADMIN_PAGINATE_LIMIT", "lots")
    monkeypatch.setenv("ADMIN_ASSOCIATION_LIMIT", "-4")
    refresh_admin_config_cache()

    config = get_admin_config()
    assert config.paginate_limit == 25
    assert config.association_limit == 75


def test_config_is_cached_until_refreshed(monkeypatch):
    first = get_admin_config()
    monkeypatch.setenv("ADMIN_PAGINATE_LIMIT", "5")
    assert get_admin_config() is first
    refresh_admin_config_cache()
    assert get_admin_config().paginate_limit == 5


def test_parse_model_modules():
    assert parse_model_modules("shop=app.models, blog.models ,,") == (
        ("shop", "app.models"),
        ("models", "blog.models"),
    )
    assert parse_model_modules(None) == ()
    assert parse_model_modules("=broken") == ()
