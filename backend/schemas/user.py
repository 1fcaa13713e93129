from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import Optional

# Shared properties for user models
class UserBase(BaseModel):
    email: EmailStr

# Schema for user authentication credentials
class LoginRequest(UserBase):
    password: str = Field(min_length=1)

# Schema for user registration requests
class SignUpRequest(UserBase):
    # bcrypt only hashes the first 72 bytes
    password: str = Field(min_length=6, max_length=72)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self

# Output schema for user profile details
class UserResponse(UserBase):
    id: int
    role: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

# Schema for JWT authentication token response with the user it belongs to
class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
