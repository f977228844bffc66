"""
Preset Catalog
==============

Schema for the device's preset catalog.

The catalog groups presets (named capture modes) under preset groups
(video, photo, timelapse). Lookups are by exact string match; nothing
is guessed.

Input Contract (from the camera):
    {
        "presetGroupArray": [
            {
                "id": "PRESET_GROUP_ID_VIDEO",
                "presetArray": [
                    {"id": 0, "titleId": "PRESET_TITLE_STANDARD", ...}
                ]
            }
        ]
    }
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from camcapture.errors import NotFoundError


# Numeric identifiers accepted by presets/set_group
PRESET_GROUP_IDS = {
    "PRESET_GROUP_ID_VIDEO": 1000,
    "PRESET_GROUP_ID_PHOTO": 1001,
    "PRESET_GROUP_ID_TIMELAPSE": 1002,
}


class Preset(BaseModel):
    """A single named capture mode."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int = Field(..., description="Numeric preset identifier")
    title_id: str = Field(..., alias="titleId", description="Preset name")
    is_modified: bool = Field(default=False, alias="isModified")


class PresetGroup(BaseModel):
    """A named group of presets."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., description="Group name, e.g. PRESET_GROUP_ID_VIDEO")
    presets: List[Preset] = Field(default_factory=list, alias="presetArray")

    @property
    def numeric_id(self) -> Optional[int]:
        return PRESET_GROUP_IDS.get(self.id)

    def find(self, title_id: str) -> Preset:
        for preset in self.presets:
            if preset.title_id == title_id:
                return preset
        raise NotFoundError(f"Preset {title_id!r} not found in group {self.id!r}")


class PresetCatalog(BaseModel):
    """Full preset catalog as returned by presets/get."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    groups: List[PresetGroup] = Field(default_factory=list, alias="presetGroupArray")

    def group(self, group_id: str) -> PresetGroup:
        for group in self.groups:
            if group.id == group_id:
                return group
        raise NotFoundError(f"Preset group {group_id!r} not found in catalog")

    def lookup(self, group_id: str, title_id: str) -> Preset:
        """Find a preset by group name and preset name (exact match)."""
        return self.group(group_id).find(title_id)
