from typing import Any

from pydantic import BaseModel, Field


class StorageManagerConfig(BaseModel):
    # Disk returned by StorageManager.disk() when no name is given
    default: str | None = None
    # disk name -> {"driver": "<driver name>", **driver options}
    disks: dict[str, dict[str, Any]] = Field(default_factory=dict)
