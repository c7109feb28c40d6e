"""
Generic CRUD endpoints for content tables.

A ``Resource`` describes one table: the stored model, the client payload used
to create rows, the model used for partial updates, the roles allowed to write,
and a few per-table behaviours (view counting, likes, a published filter,
output defaults). Counter columns live only on the stored model, so clients
cannot seed them.
``register`` wires the usual five routes under ``/api/<name>``.
"""

from typing import Any, Dict, Optional, Sequence, Tuple, Type

from fastapi import APIRouter, Depends, FastAPI, HTTPException
from pydantic import BaseModel

from auth import ADMIN, require_roles
from database import Store, collection_name, get_store, serialize_doc


class Resource:
    def __init__(
        self,
        name: str,
        model: Type[BaseModel],
        create_model: Type[BaseModel],
        update_model: Type[BaseModel],
        *,
        label: str,
        write_roles: Sequence[str] = ADMIN,
        order: Sequence[Tuple[str, int]] = (("created_at", -1),),
        count_views: bool = False,
        likeable: bool = False,
        publish_field: Optional[str] = None,
        defaults: Optional[Dict[str, Any]] = None,
    ):
        self.name = name
        self.model = model
        self.create_model = create_model
        self.update_model = update_model
        self.table = collection_name(model)
        self.label = label
        self.write_roles = tuple(write_roles)
        self.order = list(order)
        self.count_views = count_views
        self.likeable = likeable
        self.publish_field = publish_field
        self.defaults = defaults or {}

    def present(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        out = serialize_doc(doc)
        for key, value in self.defaults.items():
            if out.get(key) is None:
                out[key] = value
        return out

    def fetch(self, store: Store, row_id: str) -> Dict[str, Any]:
        doc = store.get(self.table, row_id)
        if not doc:
            raise HTTPException(status_code=404, detail=f"{self.label}을(를) 찾을 수 없습니다.")
        return doc

    def register(self, app: FastAPI) -> APIRouter:
        router = APIRouter(prefix=f"/api/{self.name}", tags=[self.name])
        writer = require_roles(*self.write_roles)
        create_model = self.create_model
        update_model = self.update_model

        @router.get("")
        def list_rows(published_only: bool = False, store: Store = Depends(get_store)):
            filt = {}
            if published_only and self.publish_field:
                filt[self.publish_field] = True
            docs = store.select(self.table, filt, order=self.order)
            return [self.present(d) for d in docs]

        @router.get("/{row_id}")
        def get_row(row_id: str, store: Store = Depends(get_store)):
            self.fetch(store, row_id)
            if self.count_views:
                store.increment(self.table, row_id, "views")
            return self.present(store.get(self.table, row_id))

        @router.post("", status_code=201)
        def create_row(payload: create_model, user=Depends(writer), store: Store = Depends(get_store)):
            return self.present(store.insert(self.table, self.model(**payload.model_dump())))

        @router.put("/{row_id}")
        def update_row(row_id: str, payload: update_model, user=Depends(writer), store: Store = Depends(get_store)):
            self.fetch(store, row_id)
            changes = payload.model_dump(exclude_unset=True)
            return self.present(store.update(self.table, {"_id": row_id}, changes))

        @router.delete("/{row_id}")
        def delete_row(row_id: str, user=Depends(writer), store: Store = Depends(get_store)):
            self.fetch(store, row_id)
            store.delete(self.table, {"_id": row_id})
            return {"success": True}

        if self.likeable:
            @router.post("/{row_id}/like")
            def like_row(row_id: str, store: Store = Depends(get_store)):
                self.fetch(store, row_id)
                store.increment(self.table, row_id, "likes")
                return self.present(store.get(self.table, row_id))

        app.include_router(router)
        return router
