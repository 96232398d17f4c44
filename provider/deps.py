"""Dependency helpers for router modules."""

from starlette.requests import Request


def get_daemon(request: Request):
    return request.app.state.daemon
