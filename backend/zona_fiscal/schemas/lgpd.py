from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

CPF_PATTERN = r"^\d{3}\.\d{3}\.\d{3}-\d{2}$"


class DeleteAccountRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    password_verified: bool = Field(..., alias="passwordVerified")
    delete_type: Literal["anonymize", "permanent"] = Field(..., alias="deleteType")
    reason: str | None = Field(None, max_length=500)


class SubmitReactivationRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    cpf: str = Field(..., pattern=CPF_PATTERN)
    phone: str | None = Field(None, max_length=20)
