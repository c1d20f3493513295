# backend/sitedb/serve.py
import os
from typing import Any, Dict

import uvicorn

_TRUTHY = {"1", "true", "yes", "on"}

# env var -> uvicorn keyword
_SSL_ENV = {
    "SSL_CERTFILE": "ssl_certfile",
    "SSL_KEYFILE": "ssl_keyfile",
    "SSL_CA_CERTS": "ssl_ca_certs",
    "SSL_KEYFILE_PASSWORD": "ssl_keyfile_password",
}


def server_options() -> Dict[str, Any]:
    """
    Build uvicorn.run keyword arguments from the environment.

    Field tablets reach the API through the site gateway, so proxy headers
    are trusted from FORWARDED_ALLOW_IPS. Reload and multiple workers are
    mutually exclusive in uvicorn; reload wins.
    """
    reload_enabled = os.getenv("RELOAD", "false").lower() in _TRUTHY
    options: Dict[str, Any] = {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "reload": reload_enabled,
        "log_level": os.getenv("LOG_LEVEL", "info"),
        "proxy_headers": True,
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "*"),
    }
    workers = int(os.getenv("WEB_CONCURRENCY", "1"))
    if workers > 1 and not reload_enabled:
        options["workers"] = workers

    for env_name, option in _SSL_ENV.items():
        value = os.getenv(env_name)
        if value:
            options[option] = value
    return options


def main() -> None:
    uvicorn.run("sitedb.main:app", **server_options())


if __name__ == "__main__":
    main()
