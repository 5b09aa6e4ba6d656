"""
Filter records and predicate builders for listing entities.

Each entity has a closed, immutable filter record produced once from the raw
query parameters (``from_params``) and a pure builder that turns the record
into a store predicate. Builders apply the entity's default visibility scope
whenever the record leaves the scoping field empty; they never look at who is
asking.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..store.base import Predicate
from .params import coerce_bool, coerce_enum, coerce_str, coerce_tags, first_present


class JobStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EmploymentType(str, Enum):
    FULL_TIME = "full_time"
    PART_TIME = "part_time"
    CONTRACT = "contract"
    INTERNSHIP = "internship"


class BlogStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class FeedbackType(str, Enum):
    FEEDBACK = "feedback"
    COMPLAINT = "complaint"


class FeedbackStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class FeedbackPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Predicate composition

def and_(*clauses: Predicate) -> Predicate:
    """Combine clauses with logical AND.

    Clauses over distinct fields are merged into one document; if two clauses
    touch the same key they are wrapped in ``$and`` instead.
    """
    clauses = tuple(clause for clause in clauses if clause)
    merged: Dict[str, Any] = {}
    for clause in clauses:
        if any(key in merged for key in clause):
            return {"$and": list(clauses)}
        merged.update(clause)
    return merged


def or_(*clauses: Predicate) -> Predicate:
    """Combine clauses with logical OR."""
    clauses = tuple(clause for clause in clauses if clause)
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$or": list(clauses)}


def contains_text(field_name: str, text: str) -> Predicate:
    """Case-insensitive literal substring match on one field."""
    return {field_name: {"$regex": re.escape(text), "$options": "i"}}


def contains_text_any(field_names: Sequence[str], text: str) -> Predicate:
    return or_(*(contains_text(name, text) for name in field_names))


def has_all(field_name: str, values: Sequence[str]) -> Predicate:
    # AND semantics: a record must carry every requested tag
    return {field_name: {"$all": list(values)}}


# Jobs

@dataclass(frozen=True)
class JobFilters:
    keyword: Optional[str] = None
    location: Optional[str] = None
    tags: Optional[Tuple[str, ...]] = None
    employment_type: Optional[EmploymentType] = None
    is_remote: Optional[bool] = None
    status: Optional[JobStatus] = None
    approval_status: Optional[ApprovalStatus] = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "JobFilters":
        return cls(
            keyword=coerce_str(params.get("keyword")),
            location=coerce_str(params.get("location")),
            tags=coerce_tags(params.get("tags")),
            employment_type=coerce_enum(
                first_present(params, "employmentType", "employment_type"), EmploymentType
            ),
            is_remote=coerce_bool(first_present(params, "isRemote", "is_remote")),
            status=coerce_enum(params.get("status"), JobStatus),
            approval_status=coerce_enum(
                first_present(params, "approvalStatus", "approval_status"), ApprovalStatus
            ),
        )


def build_job_predicate(filters: JobFilters) -> Predicate:
    """Public job board: published and approved unless overridden."""
    clauses = [
        {"status": (filters.status or JobStatus.PUBLISHED).value},
        {"approvalStatus": (filters.approval_status or ApprovalStatus.APPROVED).value},
    ]

    if filters.keyword:
        clauses.append(contains_text_any(("title", "company", "description"), filters.keyword))

    if filters.location:
        clauses.append(contains_text("location", filters.location))

    if filters.tags:
        clauses.append(has_all("tags", filters.tags))

    if filters.is_remote is not None:
        clauses.append({"isRemote": filters.is_remote})

    if filters.employment_type:
        clauses.append({"employmentType": filters.employment_type.value})

    return and_(*clauses)


# Blogs

@dataclass(frozen=True)
class BlogFilters:
    keyword: Optional[str] = None
    tags: Optional[Tuple[str, ...]] = None
    author_id: Optional[str] = None
    status: Optional[BlogStatus] = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "BlogFilters":
        # The legacy single ``tag`` parameter folds into ``tags``
        raw_tags = []
        for name in ("tags", "tag"):
            value = params.get(name)
            if isinstance(value, (list, tuple)):
                raw_tags.extend(value)
            elif value is not None:
                raw_tags.append(value)

        return cls(
            keyword=coerce_str(params.get("keyword")),
            tags=coerce_tags(raw_tags) if raw_tags else None,
            author_id=coerce_str(first_present(params, "authorId", "author_id")),
            status=coerce_enum(params.get("status"), BlogStatus),
        )


def build_blog_predicate(filters: BlogFilters) -> Predicate:
    """Blogs: published only unless a status is requested."""
    clauses = [{"status": (filters.status or BlogStatus.PUBLISHED).value}]

    if filters.author_id:
        clauses.append({"authorId": filters.author_id})

    if filters.tags:
        clauses.append(has_all("tags", filters.tags))

    if filters.keyword:
        clauses.append(contains_text_any(("title", "content", "excerpt"), filters.keyword))

    return and_(*clauses)


# Feedback

@dataclass(frozen=True)
class FeedbackFilters:
    keyword: Optional[str] = None
    type: Optional[FeedbackType] = None
    status: Optional[FeedbackStatus] = None
    priority: Optional[FeedbackPriority] = None
    user_id: Optional[str] = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "FeedbackFilters":
        return cls(
            keyword=coerce_str(params.get("keyword")),
            type=coerce_enum(params.get("type"), FeedbackType),
            status=coerce_enum(params.get("status"), FeedbackStatus),
            priority=coerce_enum(params.get("priority"), FeedbackPriority),
            user_id=coerce_str(first_present(params, "userId", "user_id")),
        )


def build_feedback_predicate(filters: FeedbackFilters) -> Predicate:
    """Feedback is an administrative listing with no default scope."""
    clauses = []

    if filters.type:
        clauses.append({"type": filters.type.value})

    if filters.status:
        clauses.append({"status": filters.status.value})

    if filters.priority:
        clauses.append({"priority": filters.priority.value})

    if filters.user_id:
        clauses.append({"userId": filters.user_id})

    if filters.keyword:
        clauses.append(contains_text_any(("subject", "message"), filters.keyword))

    return and_(*clauses)
