"""HTTP API: chunked import and export download.

Usage:
    from pg_porter.api import create_app
    from pg_porter.config import load_config

    app = create_app(load_config())
    # uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from pg_porter.api.app import create_app, profile_target_factory

__all__ = ["create_app", "profile_target_factory"]
