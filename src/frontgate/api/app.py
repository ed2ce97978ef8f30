"""ASGI entrypoint: ``uvicorn frontgate.api.app:app``.

Routes mounted according to APP_ROLE (default "public").
"""

from .factory import create_app

app = create_app()
