"""去重异常 -> HTTP 错误响应

响应体格式：{"error": {"code": ..., "message": ...}}
"""

from starlette.responses import JSONResponse
from syntask.dedup import DeduplicationError, ErrorKind

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.DEPENDENCY_FAILURE: 503,
}


def error_response(error: DeduplicationError) -> JSONResponse:
    """将 DeduplicationError 转换为 JSONResponse"""
    return JSONResponse(
        status_code=_STATUS_BY_KIND[error.kind],
        content={
            "error": {
                "code": error.kind.value.upper(),
                "message": error.message,
            }
        },
    )


def not_found_response(code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error": {"code": code, "message": message}},
    )
