"""FastAPI dependencies for the process-wide ledger objects.

Both are created in the lifespan (see main.py) and live on ``app.state``.
"""

from fastapi import Request

from cemtrack.services.dispatcher import Dispatcher
from cemtrack.services.ledger import Ledger


def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher
