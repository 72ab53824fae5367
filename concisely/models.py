from typing import Optional, List
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint
from datetime import datetime, timezone

FREQUENCIES = ("daily", "weekly", "monthly")
SUMMARY_LENGTHS = ("short", "medium", "long")
SOURCE_TYPES = ("article", "youtube", "podcast", "document")
NEWSLETTER_STATUSES = ("draft", "scheduled", "sent", "failed")

# JSON columns are only persisted when the attribute is reassigned;
# build a new list instead of appending in place.

def utcnow() -> datetime:
    """Aware UTC now; every timestamp column stores aware UTC."""
    return datetime.now(timezone.utc)

class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    topics: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    delivery_frequency: str = "weekly"  # daily | weekly | monthly
    summary_length: str = "medium"      # short | medium | long
    max_items_per_newsletter: int = 5
    saved_summary_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

class Summary(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "source_url", name="uq_summary_user_url"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    title: str
    original_content: Optional[str] = ""
    summary: str
    source_url: str = Field(index=True)  # normalized
    source_type: str  # article | youtube | podcast | document
    topics: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    helpful: int = 0
    not_helpful: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

class Newsletter(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: Optional[int] = Field(default=None, index=True)  # set for pipeline-generated issues
    title: str
    content: str
    topics: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    summary_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    sent_to: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    status: str = "draft"  # draft | scheduled | sent | failed
    scheduled_date: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    # delivery lease: set while one sender owns the issue, cleared when it finishes
    sending_since: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
