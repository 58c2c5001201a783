"""
FastAPI dependencies.
The object store is built once per app and can be overridden in tests.
"""
from fastapi import Request

from quickdrop.config import get_settings
from quickdrop.storage import ObjectStore, build_object_store


def get_object_store(request: Request) -> ObjectStore:
    store = getattr(request.app.state, "object_store", None)
    if store is None:
        store = build_object_store(get_settings())
        request.app.state.object_store = store
    return store
