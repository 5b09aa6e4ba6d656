"""
Test helper functions and factory methods for the Eventboard Listings Layer.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

# Record i is created i hours after this instant
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

_COMPANIES = ["Acme", "Globex", "Initech"]
_LOCATIONS = ["Berlin", "Remote", "New York"]
_EMPLOYMENT_TYPES = ["full_time", "part_time", "contract"]
_JOB_TAGS = [["python", "backend"], ["frontend", "react"], ["python", "data"]]
_BLOG_TAGS = [["events"], ["events", "music"], ["community"]]


def timestamp(index: int) -> str:
    """ISO-8601 creation time of the ``index``-th factory record."""
    return (BASE_TIME + timedelta(hours=index)).isoformat()


class ListingsDataFactory:
    """Factory for creating listing documents with predictable ordering."""

    @staticmethod
    def create_jobs(count: int = 45, **overrides) -> List[Dict[str, Any]]:
        """Create published, approved jobs; ``overrides`` apply to every job."""
        jobs = []
        for i in range(count):
            job = {
                "_id": f"job-{i:03d}",
                "title": f"Engineer {i:02d}",
                "company": _COMPANIES[i % 3],
                "description": f"Role number {i} on the events platform",
                "location": _LOCATIONS[i % 3],
                "tags": list(_JOB_TAGS[i % 3]),
                "employmentType": _EMPLOYMENT_TYPES[i % 3],
                "isRemote": i % 3 == 1,
                "salaryRange": {"min": 40000 + i * 1000, "max": 50000 + i * 1000},
                "status": "published",
                "approvalStatus": "approved",
                "createdAt": timestamp(i),
                "updatedAt": timestamp(i),
            }
            job.update(overrides)
            jobs.append(job)
        return jobs

    @staticmethod
    def create_blogs(count: int = 12, **overrides) -> List[Dict[str, Any]]:
        """Create published blogs."""
        blogs = []
        for i in range(count):
            blog = {
                "_id": f"blog-{i:03d}",
                "title": f"Post {i:02d}",
                "content": f"Notes from event {i}",
                "excerpt": f"Event {i} recap",
                "authorId": f"author-{i % 2}",
                "tags": list(_BLOG_TAGS[i % 3]),
                "views": i * 10,
                "status": "published",
                "publishedAt": timestamp(i),
                "createdAt": timestamp(i),
                "updatedAt": timestamp(i),
            }
            blog.update(overrides)
            blogs.append(blog)
        return blogs

    @staticmethod
    def create_feedback(count: int = 10, **overrides) -> List[Dict[str, Any]]:
        """Create feedback items alternating between feedback and complaints."""
        items = []
        for i in range(count):
            item = {
                "_id": f"feedback-{i:03d}",
                "type": "feedback" if i % 2 == 0 else "complaint",
                "subject": f"Subject {i:02d}",
                "message": f"Message body {i}",
                "status": "pending",
                "priority": "high" if i % 5 == 0 else "medium",
                "userId": f"user-{i % 3}",
                "createdAt": timestamp(i),
                "updatedAt": timestamp(i),
            }
            item.update(overrides)
            items.append(item)
        return items

