"""
src/coursehub/config/settings.py
================================
Defines the workbook layout conventions, keyword lists and file locations
used by the importers, the knowledge extractor and the resolver.
"""

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _env_path(name, default):
    value = os.environ.get(name)
    return Path(value) if value else default


def get_active_config():
    config = {
        # Only sheets named like "SPRING 2026 K69" are schedule sheets
        "sheet_pattern": r"^(SPRING|SUMMER|FALL|WINTER)\s+\d{4}\s+K\d+$",
        "semester_family_pattern": r"(SPRING|SUMMER|FALL|WINTER)\s+\d{4}",
        "cohort_pattern": r"K\d+",

        # day columns, in order after the "Time" lead column
        "day_columns": ["MON", "TUE", "WED", "THU", "FRI", "SAT"],
        "header_labels": ("time", "mon", "tue"),

        # folded (no diacritics, lowercase) keywords per session period
        "session_keywords": {
            "MORNING": ("sang", "morning"),
            "AFTERNOON": ("chieu", "afternoon"),
            "EVENING": ("toi", "evening"),
        },

        # rows after any of these are footers, not schedule data
        "schedule_sentinels": r"tba\s*=|website for registering|contact customer service",
        "catalog_footers": r"contact customer service|buy me a coffee|note:",
        "catalog_blank_limit": 20,
        "catalog_header_marker": "ma hp",
        # column offsets from the course-code column in the embedded catalog table
        "catalog_offsets": {"name_en": 1, "name_vi": 3, "credits": 5, "prerequisite": 6},

        "class_group_prefix": "IT",
        "class_group_max_span": 20,
        "instruction_code_prefix": "IHA",

        # legacy mis-decoding detection for the catalog CSV
        "mojibake_markers": ["Ã", "á»", "â€", "Ä", "\ufffd"],
        "mojibake_threshold": 8,
        "mojibake_known_good": ["Khoa Học", "Tiếng Việt"],

        # guide.md mining
        "guide_attribution_lines": 25,
        "review_min_length": 12,
        "positive_words": [
            "gioi", "tot", "tan tuy", "ton trong", "than thien", "gan gui",
            "thu vi", "chuan chi", "dong cam", "good", "great", "excellent",
            "a good man", "safe", "an toan",
        ],
        "negative_words": [
            "chan", "kho", "cang thang", "do sat", "diem thap", "thai do",
            "kho chiu", "khon nan", "tom", "thap", "nghiet", "stress", "bad",
            "hard", "toxic",
        ],
        "knowledge_cache_seconds": 60,

        # file locations (overridable through the environment)
        "db_path": _env_path("COURSEHUB_DB_PATH", PROJECT_ROOT / "data" / "coursehub.db"),
        "catalog_path": _env_path("CATALOG_CSV_PATH", PROJECT_ROOT / "data" / "catalog" / "Catalog.csv"),
        "resources_dir": _env_path("COURSEHUB_RESOURCES_DIR", PROJECT_ROOT / "data" / "resources"),
        "workbook_path": _env_path("COURSEHUB_WORKBOOK_PATH", PROJECT_ROOT / "data" / "raw" / "schedule.xlsx"),
    }
    return config
