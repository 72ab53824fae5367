from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Frequency = Literal["daily", "weekly", "monthly"]
SummaryLength = Literal["short", "medium", "long"]

class UserIn(BaseModel):
    name: str
    email: str
    topics: List[str] = Field(default_factory=list)
    delivery_frequency: Frequency = "weekly"
    summary_length: SummaryLength = "medium"
    max_items_per_newsletter: int = Field(default=5, ge=1, le=50)

class PreferencesIn(BaseModel):
    topics: Optional[List[str]] = None
    delivery_frequency: Optional[Frequency] = None
    summary_length: Optional[SummaryLength] = None
    max_items_per_newsletter: Optional[int] = Field(default=None, ge=1, le=50)

class SummaryIn(BaseModel):
    user_id: int
    url: str
    title: Optional[str] = None
    topics: List[str] = Field(default_factory=list)

class RatingIn(BaseModel):
    rating: Literal["helpful", "not_helpful"]

class NewsletterIn(BaseModel):
    title: str
    topics: List[str] = Field(default_factory=list)
    summary_ids: List[int]

class ScheduleIn(BaseModel):
    scheduled_date: datetime

class UserRef(BaseModel):
    user_id: int
