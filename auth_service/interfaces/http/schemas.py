from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from ...domain.entities import Role


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RegisterReq(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)

class AdminRegisterReq(RegisterReq):
    password: str = Field(min_length=8, max_length=128)
    admin_key: str = Field(min_length=1)

class LoginReq(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)

class ForgotPasswordReq(CamelModel):
    email: EmailStr

class ResetPasswordReq(CamelModel):
    password: str = Field(min_length=6, max_length=128)

class TeacherEmailReq(CamelModel):
    email: EmailStr

class TeacherVerifyReq(CamelModel):
    email: EmailStr
    code: str = Field(min_length=1, max_length=128)


class UserResp(CamelModel):
    id: int
    name: str
    email: str
    role: Role
    is_email_verified: bool

class MessageResp(CamelModel):
    success: bool = True
    message: str

class RegisterResp(MessageResp):
    verification_token: str | None = None
    verification_url: str | None = None

class AuthResp(CamelModel):
    success: bool = True
    token: str
    user: UserResp
    message: str | None = None

class MeResp(CamelModel):
    success: bool = True
    data: UserResp

class TeacherEmailOut(CamelModel):
    id: int
    email: str
    added_by: int | None = None
    is_verified: bool
    is_used: bool
    verified_at: datetime | None = None
    used_at: datetime | None = None
    created_at: datetime | None = None

class TeacherEmailResp(CamelModel):
    success: bool = True
    data: TeacherEmailOut

class TeacherEmailListResp(CamelModel):
    success: bool = True
    count: int
    data: list[TeacherEmailOut]

class ImportRowOut(CamelModel):
    email: str
    status: str

class ImportResp(CamelModel):
    success: bool = True
    results: list[ImportRowOut]
    message: str

class ErrorResp(CamelModel):
    success: bool = False
    message: str
    code: str | None = None
