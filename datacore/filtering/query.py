"""
Query-string entry point: one URL query string carrying filter, sort,
pagination and quick-search arguments.

    filter=status:eq:Active&sort=name:desc&pageNumber=2&pageSize=10&query=doe&queryFields=name,email

The legacy `sortBy` / `sortDirection` pair is accepted when `sort` is absent.
"""

from typing import List, Optional
from urllib.parse import parse_qs
from pydantic import BaseModel

from datacore.exceptions.errors import MalformedFilterError


class QueryRequest(BaseModel):
    filter: Optional[str] = None
    sort: Optional[str] = None
    page_number: int = 1
    page_size: Optional[int] = None
    query: Optional[str] = None
    query_fields: Optional[List[str]] = None

    @classmethod
    def from_query_string(cls, query_string: Optional[str]) -> "QueryRequest":
        if not query_string:
            return cls()

        params = {key: values[-1] for key, values in parse_qs(query_string.lstrip("?"), keep_blank_values=True).items()}

        sort = params.get("sort")
        if not sort and params.get("sortBy"):
            sort = params["sortBy"]
            if params.get("sortDirection"):
                sort = f"{sort}:{params['sortDirection']}"

        query_fields = None
        if params.get("queryFields"):
            query_fields = [name.strip() for name in params["queryFields"].split(",") if name.strip()]

        return cls(
            filter=params.get("filter") or None,
            sort=sort or None,
            page_number=_parse_int(params, "pageNumber", 1),
            page_size=_parse_int(params, "pageSize", None),
            query=params.get("query") or None,
            query_fields=query_fields,
        )


def _parse_int(params: dict, name: str, default: Optional[int]) -> Optional[int]:
    raw = params.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise MalformedFilterError(f"{name}={raw}", "expected an integer") from None
