from pydantic import BaseModel, Field


class CredentialsModel(BaseModel, frozen=True):
    salt_length: int = Field(default=16, ge=8)
    """Random salt size in bytes, hex encoded when stored."""
