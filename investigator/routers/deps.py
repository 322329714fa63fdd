"""Request dependencies."""

from fastapi import Request

from investigator.runtime import Runtime


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime
