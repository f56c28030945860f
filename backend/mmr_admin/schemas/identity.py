"""Origin identity payloads."""

from pydantic import BaseModel


class WhoAmI(BaseModel):
    """Response of the account whoami endpoint."""
    user_id: str
    device_id: str | None = None
    is_guest: bool = False
