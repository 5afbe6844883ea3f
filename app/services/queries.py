"""Shared query helpers: id parsing, pagination and user lookups for listings."""
from __future__ import annotations

import math
from typing import Iterable

from beanie import PydanticObjectId

from app.models.user import User, user_summary


def safe_object_id(value: str | None) -> PydanticObjectId | None:
    if not value:
        return None
    try:
        return PydanticObjectId(value)
    except Exception:
        return None


def page_meta(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "total_docs": total,
        "limit": limit,
        "page": page,
        "total_pages": total_pages,
        "has_prev_page": page > 1,
        "has_next_page": page < total_pages,
    }


async def paginate(document_cls, query: dict, page: int, limit: int, sort: str) -> tuple[list, dict]:
    page = max(page, 1)
    limit = max(limit, 1)
    total = await document_cls.find(query).count()
    docs = (
        await document_cls.find(query)
        .sort(sort)
        .skip((page - 1) * limit)
        .limit(limit)
        .to_list()
    )
    return docs, page_meta(total, page, limit)


async def build_user_map(user_ids: Iterable[str]) -> dict[str, dict]:
    oids: list[PydanticObjectId] = []
    seen: set[str] = set()
    for raw in user_ids:
        if not raw or raw in seen:
            continue
        oid = safe_object_id(raw)
        if oid:
            oids.append(oid)
            seen.add(raw)

    if not oids:
        return {}

    users = await User.find({"_id": {"$in": oids}}).to_list()
    return {str(u.id): user_summary(u) for u in users}
