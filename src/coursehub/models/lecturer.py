"""
src/coursehub/models/lecturer.py
================================
Lecturer, review and lecturer-course link models.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from coursehub.models.course import CatalogCourse


@dataclass
class LecturerSeed:
    id: str
    name: str
    profile_url: Optional[str] = None
    course_codes: Set[str] = field(default_factory=set)


@dataclass
class LecturerReview:
    id: str
    course_code: str
    lecturer_id: Optional[str]
    lecturer_name: Optional[str]
    content: str
    rating: Optional[int]
    sentiment: str
    source_file: str


@dataclass
class ResourceFile:
    name: str
    relative_path: str
    absolute_path: str
    extension: str
    size_bytes: int


@dataclass
class CourseOverview:
    code: str
    catalog: Optional[CatalogCourse]
    resources: List[ResourceFile] = field(default_factory=list)
    lecturer_ids: List[str] = field(default_factory=list)
    reviews: List[LecturerReview] = field(default_factory=list)
    average_rating: Optional[float] = None


@dataclass
class LecturerOverview:
    id: str
    name: str
    profile_url: Optional[str]
    courses: List[str]
    review_count: int
    average_rating: Optional[float]


@dataclass(frozen=True)
class CourseLecturerOverride:
    course_code: str
    semester_key: str
    lecturer_id: str
    enabled: bool

@dataclass(frozen=True)
class TeachingAssignment:
    course_code: str
    semester_key: str
    class_group_name: str
    instruction_code: str
    lecturer_id: str
    enabled: bool = True


@dataclass
class KnowledgeBundle:
    catalog_path: str
    resources_dir: str
    generated_at: str
    courses: List[CourseOverview] = field(default_factory=list)
    lecturers: List[LecturerOverview] = field(default_factory=list)

    @property
    def stats(self):
        return {
            "courses": len(self.courses),
            "lecturers": len(self.lecturers),
            "reviews": sum(len(course.reviews) for course in self.courses),
            "resources": sum(len(course.resources) for course in self.courses),
        }

    def course(self, code):
        return next((course for course in self.courses if course.code == code), None)

    def lecturer(self, lecturer_id):
        return next((lecturer for lecturer in self.lecturers if lecturer.id == lecturer_id), None)

    def lecturer_names(self):
        return {lecturer.id: lecturer.name for lecturer in self.lecturers}

    def default_lecturers_by_course(self):
        """Catalog-seeded lecturer ids per course, the base the override tier starts from."""
        return {course.code: set(course.lecturer_ids) for course in self.courses}
