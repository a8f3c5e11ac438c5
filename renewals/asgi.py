"""
ASGI entry point: exposes `app` for process managers and deployments.

- A process manager (uvicorn, gunicorn with uvicorn workers, hypercorn) imports
  `renewals.asgi:app`.
- Importing this module runs the startup checks: a bad configuration stops
  the import with ConfigError, so the server never binds.
"""

from renewals.app_setup.factory import create_app

app = create_app()
