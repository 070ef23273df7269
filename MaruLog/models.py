from __future__ import annotations

from typing import Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator

ActivityCategoryId = Literal["sleep", "school_work", "move", "meal", "leisure", "other"]
CATEGORY_IDS: tuple[str, ...] = get_args(ActivityCategoryId)

SCHEMA_VERSION = 1


class ActivityCategory(BaseModel):
    """
    A fixed activity category. Only the id is stored on entries.
    """
    model_config = ConfigDict(frozen=True)

    id: ActivityCategoryId
    label: str
    color: str = Field(description="Tailwind class tokens")
    icon: str = Field(description="Iconify icon name")


CATEGORIES: List[ActivityCategory] = [
    ActivityCategory(id="sleep", label="睡眠", color="text-indigo-500 bg-indigo-500", icon="i-lucide-bed"),
    ActivityCategory(id="school_work", label="学校 / 仕事", color="text-blue-500 bg-blue-500", icon="i-lucide-briefcase"),
    ActivityCategory(id="move", label="移動", color="text-yellow-500 bg-yellow-500", icon="i-lucide-bus"),
    ActivityCategory(id="meal", label="食事", color="text-orange-500 bg-orange-500", icon="i-lucide-utensils"),
    ActivityCategory(id="leisure", label="余暇", color="text-green-500 bg-green-500", icon="i-lucide-gamepad-2"),
    ActivityCategory(id="other", label="その他", color="text-gray-500 bg-gray-500", icon="i-lucide-align-justify"),
]

_CATEGORIES_BY_ID: Dict[str, ActivityCategory] = {c.id: c for c in CATEGORIES}


def get_category(category_id: str) -> ActivityCategory:
    try:
        return _CATEGORIES_BY_ID[category_id]
    except KeyError:
        raise ValueError(f"Unknown activity category '{category_id}'. Expected one of: {', '.join(CATEGORY_IDS)}") from None


class ActivityLogEntry(BaseModel):
    """
    One recorded activity interval. Times are epoch milliseconds; an entry
    without ``end_time`` is the activity currently in progress.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    category_id: ActivityCategoryId = Field(..., alias="categoryId")
    start_time: int = Field(..., alias="startTime")
    end_time: Optional[int] = Field(default=None, alias="endTime")

    @model_validator(mode='after')
    def check_start_before_end(self):
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError(f"End time ({self.end_time}) must be after or same as start time ({self.start_time}).")
        return self

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def effective_end(self, now_ms: int) -> int:
        """End time for overlap and duration purposes; open entries run until ``now_ms``."""
        return self.end_time if self.end_time is not None else now_ms

    def duration_ms(self, now_ms: int) -> int:
        return max(0, self.effective_end(now_ms) - self.start_time)


class ActivityLogDocument(BaseModel):
    """Persisted shape of the whole log."""
    model_config = ConfigDict(populate_by_name=True)

    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    entries: List[ActivityLogEntry] = Field(default_factory=list)
