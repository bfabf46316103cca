"""Task model"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class Task:
    """A unit of work, persisted as one markdown file."""
    id: str
    title: str
    body: str
    created: date
    linear_id: Optional[str] = None  # External tracker id
    linear_url: Optional[str] = None
    linear_labels: Optional[str] = None  # Comma-separated
    project_key: str = ""
    extra: Mapping[str, Any] = field(default_factory=dict, hash=False)  # Unrecognized front matter keys

    @property
    def context(self) -> str:
        """Prompt text handed to a freshly launched agent."""
        context = f"Task: {self.title}"
        if self.body.strip():
            context += f"\n\nDescription:\n{self.body.strip()}"
        return context
