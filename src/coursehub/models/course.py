"""
src/coursehub/models/course.py
==============================
Dataclass models for course catalog metadata.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class CatalogCourse:
    code: str
    name_en: Optional[str] = None
    name_vi: Optional[str] = None
    credits: Optional[int] = None
    prerequisite: Optional[str] = None
    note: Optional[str] = None
    program: Optional[str] = None
    section: Optional[str] = None

    def supplied_fields(self):
        """Metadata fields this parse actually carries (used for non-destructive upserts)."""
        fields = {}
        if self.name_en:
            fields["name_en"] = self.name_en
        if self.name_vi:
            fields["name_vi"] = self.name_vi
        if isinstance(self.credits, int):
            fields["credits"] = self.credits
        if self.prerequisite:
            fields["prerequisite"] = self.prerequisite
        return fields
