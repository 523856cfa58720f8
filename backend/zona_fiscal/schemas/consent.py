from pydantic import BaseModel


class ConsentUpdate(BaseModel):
    """Consent toggles; omitted categories are not recorded."""

    essential: bool | None = None
    analytics: bool | None = None
    marketing: bool | None = None
    personalization: bool | None = None
    data_processing: bool | None = None
    data_sharing: bool | None = None
