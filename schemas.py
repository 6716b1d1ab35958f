"""
Database Schemas for the Pet Adoption Platform

MongoDB collections are described below using Pydantic models. Collection names
keep the existing petsDB layout:

- users: registered accounts and their role (admin, user)
- pets: pet listings, looked up publicly by petId
- donations: donation campaigns
- donationPayments: payments recorded against a campaign (donId)
- requests: adoption requests (one per pet and requester)

Listing and campaign documents carry whatever extra display fields the client
sends (images, descriptions, ...); only the fields below are interpreted here.
"""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["admin", "user"]
RequestStatus = Literal["pending", "approved", "rejected"]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    photoURL: Optional[str] = None
    role: Role = Field("user")
    createdAt: datetime = Field(default_factory=now_utc)


class Pet(BaseModel):
    model_config = ConfigDict(extra="allow")

    petId: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Public lookup id")
    name: str
    category: str
    email: Optional[str] = Field(None, description="Owner email")
    adopted: bool = False
    createdAt: datetime = Field(default_factory=now_utc)


class Donation(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: Optional[str] = Field(None, description="Campaign owner email")
    petName: Optional[str] = None
    maxDonationAmount: Optional[float] = None
    donationStatus: str = "active"
    createdAt: datetime = Field(default_factory=now_utc)


class DonationPayment(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: str = Field(..., description="Payer email")
    donId: str = Field(..., description="Reference to donations _id")
    amount: float
    createdAt: datetime = Field(default_factory=now_utc)


class AdoptionRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    petId: str
    adoptedReqByEmail: str
    petOwnerEmail: Optional[str] = None
    reqStatus: RequestStatus = "pending"
    createdAt: datetime = Field(default_factory=now_utc)


# Request bodies

class UserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    photoURL: Optional[str] = None


class PetUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    age: Optional[Union[int, str]] = None
    location: Optional[str] = None
    image: Optional[str] = None
    shortDescription: Optional[str] = None
    longDescription: Optional[str] = None


class DonationUpdate(BaseModel):
    petName: Optional[str] = None
    petImage: Optional[str] = None
    maxDonationAmount: Optional[float] = None
    lastDate: Optional[str] = None
    shortDescription: Optional[str] = None
    longDescription: Optional[str] = None


class AdoptedStatusUpdate(BaseModel):
    adopted: bool


class DonationStatusUpdate(BaseModel):
    donationStatus: str


class RequestStatusUpdate(BaseModel):
    status: RequestStatus


class RoleUpdate(BaseModel):
    role: Role


class PaymentIntentRequest(BaseModel):
    amount: int
