from pydantic import BaseModel, Field
from typing import Any, List, Optional


class TransportErrorResponse(BaseModel):
    title: str
    status: int
    detail: str
    url: Optional[str] = None

    def is_transient(self) -> bool:
        return self.status in (500, 502, 503, 504)


class ServiceError(BaseModel):
    """Error envelope GP services return inside an HTTP 200 body:

    {"error": {"code": 498, "message": "Invalid token.", "details": []}}
    """

    code: Optional[int] = None
    message: str = ""
    details: List[Any] = Field(default_factory=list)

    def is_transient(self) -> bool:
        return self.code in (500, 502, 503, 504)

    def describe(self) -> str:
        text = f"{self.code}: {self.message}" if self.code is not None else self.message
        extra = [str(d) for d in self.details if d]
        if extra:
            text = f"{text} ({'; '.join(extra)})"
        return text


def extract_service_error(body: Any) -> Optional[ServiceError]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, dict):
        return None
    try:
        return ServiceError(**error)
    except Exception:
        return ServiceError(message=str(error))
