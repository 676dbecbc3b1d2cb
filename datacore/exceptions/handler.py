from typing import Any, Dict, Optional, Tuple
from datacore.logging.logger import get_logger
from datacore.response import ResponseModel
from datacore.config import settings
from .errors import BusinessException, StorageError, TransactionStateError

def handle_exception(exc: Exception, trace_id: Optional[str] = None) -> Tuple[int, Dict[str, Any]]:
    """
    Global exception mapper for whatever boundary layer consumes the core.

    Returns (status_code, payload). Client rejections carry the offending
    field or token in `data`; state and storage failures surface as 500.
    """
    logger = get_logger("exception_handler", trace_id=trace_id)
    trace_id = trace_id or "unknown"

    if isinstance(exc, StorageError):
        logger.critical(f"Trace[{trace_id}] - StorageError: {exc.cause}")
        return 500, ResponseModel.fail(code=500, message="Service temporarily unavailable")

    if isinstance(exc, TransactionStateError):
        logger.error(f"Trace[{trace_id}] - TransactionStateError: {exc.message}")
        return 500, ResponseModel.fail(
            code=500,
            message="System busy, please try again later",
            data=exc.detail if settings.DEBUG else None,
        )

    if isinstance(exc, BusinessException):
        logger.warning(f"Trace[{trace_id}] - BusinessError: {exc.message}")
        return exc.status_code, ResponseModel.fail(code=exc.code, message=exc.message, data=exc.detail)

    logger.opt(exception=True).error(f"Trace[{trace_id}] - UncaughtException: {str(exc)}")

    return 500, ResponseModel.fail(
        code=500,
        message="System busy, please try again later",
        data={"trace_id": trace_id} if settings.DEBUG else None,
    )
