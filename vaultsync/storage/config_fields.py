"""
Descriptors for the fields a caller presents to configure a backend.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ConfigFieldType(str, Enum):
    """Kind of input the UI should render."""
    TEXT = "text"
    PASSWORD = "password"
    SELECT = "select"


class StorageConfigField(BaseModel):
    """A single configuration field."""
    id: str
    title: str
    type: ConfigFieldType = ConfigFieldType.TEXT
    desc: Optional[str] = None
    required: bool = False
    pattern: Optional[str] = None
    placeholder: Optional[str] = None
    options: Optional[Dict[str, str]] = None
    value: Optional[str] = None


class StorageOpenConfig(BaseModel):
    """Fields shown before a backend can be used for the first time."""
    desc: Optional[str] = None
    fields: List[StorageConfigField] = Field(default_factory=list)


class StorageSettingsConfig(BaseModel):
    """Fields shown on the backend's settings page."""
    fields: List[StorageConfigField] = Field(default_factory=list)
