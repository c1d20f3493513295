from __future__ import annotations

from sitedb import serve


def test_defaults(monkeypatch):
    for name in ("HOST", "PORT", "RELOAD", "WEB_CONCURRENCY", *serve._SSL_ENV):
        monkeypatch.delenv(name, raising=False)

    options = serve.server_options()

    assert options["host"] == "0.0.0.0"
    assert options["port"] == 8000
    assert options["reload"] is False
    assert "workers" not in options
    assert not any(key.startswith("ssl_") for key in options)


def test_ssl_and_workers(monkeypatch):
    monkeypatch.setenv("PORT", "8443")
    monkeypatch.setenv("WEB_CONCURRENCY", "4")
    monkeypatch.setenv("RELOAD", "false")
    monkeypatch.setenv("SSL_CERTFILE", "/etc/sitedb/cert.pem")
    monkeypatch.setenv("SSL_KEYFILE", "/etc/sitedb/key.pem")

    options = serve.server_options()

    assert options["port"] == 8443
    assert options["workers"] == 4
    assert options["ssl_certfile"] == "/etc/sitedb/cert.pem"
    assert options["ssl_keyfile"] == "/etc/sitedb/key.pem"


def test_reload_disables_workers(monkeypatch):
    monkeypatch.setenv("RELOAD", "yes")
    monkeypatch.setenv("WEB_CONCURRENCY", "4")

    options = serve.server_options()

    assert options["reload"] is True
    assert "workers" not in options
