"""
Global error handling middleware.

Every failure reaching the client is a JSON body of the form
``{"error": <short user-facing message>, "detail": <technical detail>}``.
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

from bloomwatch.domain.exceptions import BloomWatchError, RemoteServiceError


logger = logging.getLogger(__name__)


def error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Turns pipeline failures into short user-facing messages.

    Pipeline errors keep their own status code. Stray ValueErrors are client
    mistakes (400); anything else is a 500 without internals in the body.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        """
        Process the request and handle any exceptions.

        Args:
            request: The incoming request
            call_next: The next middleware or route handler

        Returns:
            Response object
        """
        context = {"path": request.url.path, "method": request.method}
        try:
            return await call_next(request)

        except BloomWatchError as e:
            context["status_code"] = e.status_code
            if isinstance(e, RemoteServiceError) and e.remote_status is not None:
                context["remote_status"] = e.remote_status
            if e.status_code >= 500:
                logger.error(f"{type(e).__name__}: {e.message}", extra=context)
            else:
                logger.warning(f"{type(e).__name__}: {e.message}", extra=context)
            return error_response(e.status_code, e.user_message, e.message)

        except ValueError as e:
            logger.warning(f"Rejected request: {e}", extra=context)
            return error_response(status.HTTP_400_BAD_REQUEST, "Invalid request", str(e))

        except Exception as e:
            logger.exception(f"Unhandled exception: {e}", extra=context)
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "An unexpected error occurred",
            )
