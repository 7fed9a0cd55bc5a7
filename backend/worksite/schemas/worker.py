from pydantic import BaseModel, field_validator


class Worker(BaseModel):
    id: str
    name: str
    phone_number: str

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, v: object) -> str:
        return str(v)


class WorkerCreate(BaseModel):
    name: str
    phone_number: str

    @field_validator("name", "phone_number")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()


class UserIdentity(BaseModel):
    id: str
    email: str | None = None


class UserProfile(BaseModel):
    id: str | None = None
    name: str | None = None
    role: str | None = None
