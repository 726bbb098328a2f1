"""
Request bodies for the batch endpoints.
"""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field


class BatchRunRequest(BaseModel):
    date: dt.date | None = None
    force: bool = False


class CleanupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    days_old: int = Field(default=30, alias="daysOld", ge=0)
    dry_run: bool = Field(default=False, alias="dryRun")
