from pydantic import BaseModel, EmailStr, ConfigDict, Field
from datetime import datetime
from typing import Optional

class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    first_name: str
    last_name: str
    is_vendor: bool = False
    business_name: Optional[str] = None

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserRead(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    profile_image: Optional[str] = None
    role: str
    email_verified: bool

    model_config = ConfigDict(from_attributes=True)

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image: Optional[str] = None

class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=8)

class TwoFactorToken(BaseModel):
    token: str

class AdminUserItem(UserRead):
    is_active: bool
    two_factor_enabled: bool
    created_at: datetime
    is_vendor: bool = False

class PasswordResetRequest(BaseModel):
    email: EmailStr

class NewPassword(BaseModel):
    token: str
    password: str = Field(min_length=8)

class EmailVerificationCode(BaseModel):
    code: str
