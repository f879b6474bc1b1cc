from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from .errors import RegistryError

T = TypeVar("T")


class Result(BaseModel, Generic[T]):
    """
    Outcome of a network or storage operation.

    Mirrors the `{"status": ..., "msg": ...}` envelopes the scrapers hand back,
    so a caller can render a retry prompt instead of catching exceptions.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: Literal["success", "error"]
    data: Optional[T] = None
    msg: Optional[str] = None
    error: Optional[RegistryError] = Field(default=None, exclude=True)

    @classmethod
    def success(cls, data=None) -> "Result":
        return cls(status="success", data=data)

    @classmethod
    def failure(cls, error: RegistryError, msg: Optional[str] = None) -> "Result":
        return cls(status="error", msg=msg or str(error), error=error)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def unwrap(self) -> T:
        if self.ok:
            return self.data
        raise self.error or RegistryError(self.msg or "Unknown error")
