from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from .models import SleepRecord, User, as_utc

# ---- Requests ----
class SignupUserIn(BaseModel):
    # Blank values are reported by accounts.signup, not rejected here
    name: str = ""
    email: str = ""
    password: str = ""
    password_confirmation: Optional[str] = None

class SignupIn(BaseModel):
    user: SignupUserIn

class LoginIn(BaseModel):
    # Missing credentials get the same 401 as wrong ones
    email: str = ""
    password: str = ""

# ---- Responses ----
class UserOut(BaseModel):
    id: int
    name: str
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(id=user.id, name=user.name, email=user.email)

class TokenOut(BaseModel):
    token: str
    user: UserOut

class SleepRecordOut(BaseModel):
    id: int
    user_id: int
    clock_in: datetime
    clock_out: Optional[datetime] = None
    created_at: datetime
    duration_seconds: Optional[int] = None
    duration_hours: Optional[float] = None

    @classmethod
    def from_record(cls, record: SleepRecord) -> "SleepRecordOut":
        return cls(
            id=record.id,
            user_id=record.user_id,
            clock_in=as_utc(record.clock_in),
            clock_out=as_utc(record.clock_out),
            created_at=as_utc(record.created_at),
            duration_seconds=record.duration_seconds,
            duration_hours=record.duration_hours,
        )

class ClockToggleOut(BaseModel):
    message: str
    sleep_records: list[SleepRecordOut]

class FeedEntryOut(SleepRecordOut):
    user_name: str

    @classmethod
    def from_row(cls, record: SleepRecord, user_name: str) -> "FeedEntryOut":
        return cls(user_name=user_name, **SleepRecordOut.from_record(record).model_dump())

class FollowOut(BaseModel):
    message: str
    following: list[UserOut]
