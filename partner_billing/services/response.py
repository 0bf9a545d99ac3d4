"""Paged list envelopes for the API layer."""


def list_response(items: list, limit: int, offset: int) -> dict:
    return {"items": items, "count": len(items), "limit": limit, "offset": offset}


class ListResponseMixin:
    """Adds ``list_response`` to services whose ``list`` ends with limit, offset."""

    @classmethod
    def list_response(cls, db, *args):
        if len(args) < 2:
            raise ValueError("limit and offset are required for list responses")
        *filters, limit, offset = args
        return list_response(cls.list(db, *filters, limit, offset), limit, offset)
