from typing import Any, Optional
from pydantic import BaseModel

from datacore.repository.results import GetManyAndCountResult

class ResponseModel(BaseModel):
    code: int = 200
    message: str = "success"
    data: Optional[Any] = None

    @staticmethod
    def success(data: Any = None):
        return {"code": 200, "message": "success", "data": data}

    @staticmethod
    def fail(code: int = 400, message: str = "error", data: Any = None):
        return {"code": code, "message": message, "data": data}

    @staticmethod
    def page(result: GetManyAndCountResult, dump=None):
        """Wrap one page of results; `dump` converts each item (defaults to model_dump())."""
        dump = dump or (lambda item: item.model_dump())
        return ResponseModel.success({
            "items": [dump(item) for item in result.items],
            "count": result.count,
            "page_number": result.page_number,
            "page_size": result.page_size,
            "total_pages": result.total_pages,
            "sorting": result.sorting.format(),
        })
