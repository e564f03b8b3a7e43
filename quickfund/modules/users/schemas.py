from pydantic import BaseModel, EmailStr, Field, validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal

from quickfund.core.security import UserRole
from quickfund.modules.users.models import EmploymentStatus


# User Registration
class UserRegistrationRequest(BaseModel):
    """Borrower registration with the profile used for credit scoring"""
    # Authentication
    email: EmailStr
    password: str = Field(..., min_length=8)

    # Personal Information
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, min_length=10, max_length=20)
    date_of_birth: Optional[date] = None

    # Address
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: str = Field("Nigeria", max_length=100)

    # Financial Profile
    employment_status: Optional[EmploymentStatus] = None
    employer_name: Optional[str] = Field(None, max_length=255)
    monthly_income: Optional[Decimal] = Field(None, ge=0)

    @validator('date_of_birth')
    def validate_age(cls, v):
        """Ensure user is at least 18 years old"""
        if v is None:
            return v
        today = date.today()
        age = today.year - v.year - ((today.month, today.day) < (v.month, v.day))
        if age < 18:
            raise ValueError('You must be at least 18 years old to register')
        if age > 120:
            raise ValueError('Invalid date of birth')
        return v


# User Profile
class UserProfileResponse(BaseModel):
    id: int
    email: str
    role: UserRole
    first_name: str
    last_name: str
    phone: Optional[str]
    date_of_birth: Optional[date]
    address: Optional[str]
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    country: str
    employment_status: Optional[EmploymentStatus]
    employer_name: Optional[str]
    monthly_income: Optional[Decimal]
    is_active: bool
    is_verified: bool
    last_login_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
