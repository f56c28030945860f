"""Error body returned by the admin surface on failure."""

from pydantic import BaseModel


class ErrorBody(BaseModel):
    """``{error, message, code}``; Matrix endpoints send ``{errcode, error}`` instead."""
    error: str | None = None
    message: str | None = None
    code: int | str | None = None
    errcode: str | None = None
