from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RevertAnonymizationRequest(BaseModel):
    """contactEmail is where the reactivation link goes; the stored address is scrubbed."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, max_length=128)
    contact_email: EmailStr | None = Field(None, alias="contactEmail")


class ApproveReactivationRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    approved: bool


class DeleteUserPermanentlyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", min_length=1, max_length=128)
    reason: str | None = Field(None, max_length=500)
