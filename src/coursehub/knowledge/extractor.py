"""
src/coursehub/knowledge/extractor.py
====================================
Course knowledge built from the catalog CSV and the per-course resource tree.

resources/<COURSE CODE>/
    guide.md        lecturer list at the top, "- " review bullets anywhere
    ...             any other files are listed as course resources

Lecturers named in a guide become seed lecturers (slug ids); the review bullets
are attributed to them and scored with a small keyword heuristic.
"""

import logging
import os
import re
import time
from datetime import datetime, timezone
from pathlib import Path

from coursehub.config.settings import get_active_config
from coursehub.importers.catalog import load_catalog
from coursehub.models.lecturer import (
    CourseOverview,
    KnowledgeBundle,
    LecturerOverview,
    LecturerReview,
    LecturerSeed,
    ResourceFile,
)
from coursehub.text import fold_text, normalize_course_code, slugify

logger = logging.getLogger(__name__)

INLINE_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^)\s]+)\)")
REFERENCE_USE_RE = re.compile(r"\[([^\]]+)\]\[([^\]]+)\]")
REFERENCE_DEF_RE = re.compile(r"^\[([^\]]+)\]:\s*(https?://\S+)", re.IGNORECASE | re.MULTILINE)
NUMBERED_RE = re.compile(r"^\d+\.\s*(.+)$")
HONORIFIC_RE = re.compile(r"^(Professor|Prof\.?|Thầy|Cô|Mr\.?|Ms\.?)\s+", re.IGNORECASE)

_cache = {"at": None, "key": None, "data": None}


# ---------- scoring ----------
def score_from_content(content, config=None):
    """clamp(3 + positive - negative, 1, 5); None when no keyword is present."""
    config = config or get_active_config()
    text = fold_text(content)
    positive = sum(1 for word in config["positive_words"] if fold_text(word) in text)
    negative = sum(1 for word in config["negative_words"] if fold_text(word) in text)
    if positive == 0 and negative == 0:
        return None
    return max(1, min(5, 3 + positive - negative))


def sentiment_from_score(score):
    if score is None:
        return "neutral"
    if score >= 4:
        return "positive"
    if score <= 2:
        return "negative"
    return "neutral"


def average_rating(reviews):
    ratings = [review.rating for review in reviews if isinstance(review.rating, int)]
    if not ratings:
        return None
    return round(sum(ratings) / len(ratings), 2)


# ---------- resources ----------
def scan_course_resources(resources_dir):
    """
    One entry per directory whose name is a course code:
        {code: {"course_dir", "resources", "guide_path", "guide_content"}}
    Dot files and dot directories are skipped.
    """
    base = Path(resources_dir)
    result = {}
    if not base.is_dir():
        logger.warning("Resources directory not found at %s", base)
        return result

    for entry in sorted(base.iterdir()):
        if not entry.is_dir():
            continue
        code = normalize_course_code(entry.name)
        if not code:
            continue

        resources = []
        guide_path = None
        guide_content = None
        for current, dirnames, filenames in os.walk(entry):
            dirnames[:] = [name for name in dirnames if not name.startswith(".")]
            for name in filenames:
                if name.startswith("."):
                    continue
                absolute = Path(current) / name
                if name.lower() == "guide.md":
                    guide_path = absolute
                    guide_content = absolute.read_text(encoding="utf-8", errors="replace")
                resources.append(
                    ResourceFile(
                        name=name,
                        relative_path=absolute.relative_to(entry).as_posix(),
                        absolute_path=str(absolute),
                        extension=absolute.suffix.lstrip(".").lower() or "unknown",
                        size_bytes=absolute.stat().st_size,
                    )
                )

        resources.sort(key=lambda item: item.relative_path)
        result[code] = {
            "course_dir": entry,
            "resources": resources,
            "guide_path": guide_path,
            "guide_content": guide_content,
        }
    return result


def resolve_resource_file(resources_dir, course, relative_path):
    """Absolute path of a course resource, or None if it is missing or outside the course folder."""
    code = normalize_course_code(course)
    if not code or not relative_path:
        return None

    base = Path(resources_dir).resolve()
    if not base.is_dir():
        return None
    course_dir = next(
        (entry for entry in base.iterdir() if entry.is_dir() and normalize_course_code(entry.name) == code),
        None,
    )
    if course_dir is None:
        return None

    target = (course_dir / relative_path).resolve()
    if target != course_dir and course_dir not in target.parents:
        return None
    if not target.is_file():
        return None
    return target


# ---------- guide.md ----------
def clean_lecturer_name(raw):
    name = re.sub(r"^\s*\d+\.\s*", "", raw)
    name = HONORIFIC_RE.sub("", name)
    name = re.sub(r"^[-*\s]+", "", name)
    return name.strip()


def _register(lecturers_by_id, declared, course_code, raw_name, url):
    name = clean_lecturer_name(raw_name)
    if len(name) < 2:
        return
    lecturer_id = slugify(name)
    if not lecturer_id:
        return
    seed = lecturers_by_id.get(lecturer_id)
    if seed is None:
        seed = LecturerSeed(id=lecturer_id, name=name, profile_url=url)
        lecturers_by_id[lecturer_id] = seed
    elif seed.profile_url is None:
        seed.profile_url = url
    seed.course_codes.add(course_code)
    if lecturer_id not in declared:
        declared.append(lecturer_id)


def attribution_zone(lines, limit=25):
    for index, line in enumerate(lines):
        if line.strip() == "---":
            return lines[:index]
    return lines[:limit]


def parse_guide(course_code, guide_path, content, lecturers_by_id, config=None):
    """
    Read lecturers from the top of a guide and mine its "- " bullets as reviews.
    ``lecturers_by_id`` is shared across guides and updated in place; the
    reviews found are returned.
    """
    config = config or get_active_config()
    references = {
        matched.group(1).strip().lower(): matched.group(2).strip()
        for matched in REFERENCE_DEF_RE.finditer(content)
    }
    lines = re.split(r"\r?\n", content)
    declared = []

    for line in attribution_zone(lines, config["guide_attribution_lines"]):
        trimmed = line.strip()
        for matched in INLINE_LINK_RE.finditer(trimmed):
            _register(lecturers_by_id, declared, course_code, matched.group(1), matched.group(2))
        for matched in REFERENCE_USE_RE.finditer(trimmed):
            url = references.get(matched.group(2).strip().lower())
            _register(lecturers_by_id, declared, course_code, matched.group(1), url)
        numbered = NUMBERED_RE.match(trimmed)
        if numbered and "[" not in trimmed and "]" not in trimmed:
            _register(lecturers_by_id, declared, course_code, numbered.group(1), None)

    reviews = []
    for line in lines:
        trimmed = line.strip()
        if not trimmed.startswith("- "):
            continue
        text = trimmed[2:].strip()
        if len(text) < config["review_min_length"]:
            continue

        lecturer_id = None
        if len(declared) == 1:
            lecturer_id = declared[0]
        elif declared:
            folded = fold_text(text)
            for candidate in declared:
                tokens = [token for token in fold_text(lecturers_by_id[candidate].name).split() if len(token) >= 3]
                if any(token in folded for token in tokens):
                    lecturer_id = candidate
                    break

        rating = score_from_content(text, config)
        reviews.append(
            LecturerReview(
                id=f"{slugify(course_code)}-{len(reviews)}",
                course_code=course_code,
                lecturer_id=lecturer_id,
                lecturer_name=lecturers_by_id[lecturer_id].name if lecturer_id else None,
                content=text,
                rating=rating,
                sentiment=sentiment_from_score(rating),
                source_file=str(guide_path),
            )
        )
    return reviews


# ---------- bundle ----------
def _lecturer_overview(seed, reviews):
    own = [review for review in reviews if review.lecturer_id == seed.id]
    return LecturerOverview(
        id=seed.id,
        name=seed.name,
        profile_url=seed.profile_url,
        courses=sorted(seed.course_codes),
        review_count=len(own),
        average_rating=average_rating(own),
    )


def build_knowledge(catalog_path, resources_dir, config=None) -> KnowledgeBundle:
    config = config or get_active_config()
    catalog = load_catalog(catalog_path, config)
    course_resources = scan_course_resources(resources_dir)

    lecturers_by_id = {}
    reviews = []
    for code, data in course_resources.items():
        if data["guide_path"] and data["guide_content"]:
            reviews.extend(parse_guide(code, data["guide_path"], data["guide_content"], lecturers_by_id, config))

    courses = []
    for code in sorted(set(catalog) | set(course_resources)):
        course_reviews = [review for review in reviews if review.course_code == code]
        lecturer_ids = {review.lecturer_id for review in course_reviews if review.lecturer_id}
        lecturer_ids.update(seed.id for seed in lecturers_by_id.values() if code in seed.course_codes)
        courses.append(
            CourseOverview(
                code=code,
                catalog=catalog.get(code),
                resources=course_resources.get(code, {}).get("resources", []),
                lecturer_ids=sorted(lecturer_ids, key=lambda item: lecturers_by_id[item].name),
                reviews=course_reviews,
                average_rating=average_rating(course_reviews),
            )
        )

    lecturers = sorted(
        (_lecturer_overview(seed, reviews) for seed in lecturers_by_id.values()),
        key=lambda item: item.name,
    )
    bundle = KnowledgeBundle(
        catalog_path=str(catalog_path),
        resources_dir=str(resources_dir),
        generated_at=datetime.now(timezone.utc).isoformat(),
        courses=courses,
        lecturers=lecturers,
    )
    logger.info("Knowledge built: %s", bundle.stats)
    return bundle


def load_knowledge(config=None, force=False) -> KnowledgeBundle:
    """build_knowledge for the configured paths, reused for ``knowledge_cache_seconds``."""
    config = config or get_active_config()
    key = (str(config["catalog_path"]), str(config["resources_dir"]))
    now = time.monotonic()
    if (
        not force
        and _cache["data"] is not None
        and _cache["key"] == key
        and now - _cache["at"] < config["knowledge_cache_seconds"]
    ):
        return _cache["data"]

    data = build_knowledge(config["catalog_path"], config["resources_dir"], config)
    _cache.update(at=now, key=key, data=data)
    return data
