import logging
import time

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.errors import StorageError

logger = logging.getLogger("journalflow.http")


def _error(status_code: int, detail: str, kind: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "type": kind})


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    请求日志 + 兜底异常转换。

    中文注释:
    - 业务规则失败已由路由层转换为 {success:false, error}，这里只处理基础设施错误与未知异常。
    - 存储不可用 -> 503，其它 -> 500；对外只给通用提示，细节进日志/Sentry。
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        except HTTPException as exc:
            status = exc.status_code
            return _error(exc.status_code, exc.detail, "http_exception")
        except StorageError as e:
            status = 503
            logger.error("storage unavailable: %s", e, exc_info=True)
            return _error(503, "服务暂时不可用，请稍后重试", "storage_error")
        except Exception as e:
            logger.error("unhandled exception: %s", e, exc_info=True)
            return _error(500, "内部系统错误，请联系管理员", "server_error")
        finally:
            logger.info(
                "%s %s -> %s (%.1fms)",
                request.method,
                request.url.path,
                status,
                (time.perf_counter() - started) * 1000,
            )
