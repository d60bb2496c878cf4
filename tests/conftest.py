import pytest
from openpyxl import Workbook

from coursehub.config.settings import get_active_config
from coursehub.importers.normalizer import import_workbook
from coursehub.knowledge.extractor import build_knowledge
from coursehub.storage.database import Database

HEADER = [None, "Time", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]

K69_ROWS = [
    [None, "SCHEDULE FOR SPRING 2026 - K69"],
    [None, "DURATION: 2026-01-12 - 2026-05-10"],
    [],
    HEADER,
    [None, "IT 01-02"],
    [None, "Sáng", "CS2255\nA101\n08:00-10:30", "MATH101\nB202\n8:00 IT 02"],
    [None, "Chiều", "ENG1001\nIHA12 Room C3\n13:30", None, "not a code"],
    [None, "IT 03"],
    [None, "Morning", None, "CS 2255\nA101\n09:00"],
    [None, "TBA = to be announced"],
    [None, "Sáng", "CS2255\nX9\n07:00"],
    [],
    [None, "Mã HP", "Course", None, "Tên học phần", None, "Credits", "Prerequisite"],
    [None, "CS2255", "Data Structures", None, "Cấu trúc dữ liệu", None, 3, "CS 1001"],
    [None, "MATH101", "Calculus", None, "Giải tích", None, "4 credits", None],
    [None, "Contact customer service: 0123"],
]

K70_ROWS = [
    [None, "SCHEDULE FOR SPRING 2026 - K70"],
    [None, "DURATION: 2026-01-05 - 2026-04-30"],
    HEADER,
    [None, "IT 01"],
    [None, "Sáng", "CS2255\nA102\n08:00", "CS2255\nA102\n08:00"],
]


def write_workbook(path, sheets):
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(title=name)
        for row in rows:
            worksheet.append(row)
    workbook.save(path)
    return path


@pytest.fixture
def workbook_path(tmp_path):
    return write_workbook(
        tmp_path / "schedule.xlsx",
        {"Notes": [["nothing to see"]], "SPRING 2026 K69": K69_ROWS, "SPRING 2026 K70": K70_ROWS},
    )


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "coursehub.db")
    yield database
    database.close()


@pytest.fixture
def imported_db(db, workbook_path):
    import_workbook(db, workbook_path)
    return db


CS_GUIDE = """# CS 2255 guide
1. [Thầy Nguyễn Văn An](https://example.edu/an)
2. [Cô Trần Thị Bình][binh]
3. Lê Văn Cường

[binh]: https://example.edu/binh
---
## Reviews
- Thầy Nguyễn Văn An dạy rất tốt và tận tụy, giảng bài giỏi
- Cô Trần Thị Bình chấm điểm thấp, thái độ khó chịu
- Ok
- Thầy Cường giảng hay, bài tập thú vị
- Môn này nhiều bài tập lắm mọi người
"""

MATH_GUIDE = """Lecturer:
1. Prof. Smith

- Great lectures but the exams are hard
"""

KNOWLEDGE_CATALOG = (
    "Computer Science Program,,,,,,\n"
    "No.,Mã HP,Course,Tên học phần,Credits,Prerequisite,Note\n"
    "1,CS2255,Data Structures,Cấu trúc dữ liệu,3,,\n"
    "2,IT3001,Networks,Mạng máy tính,3,,\n"
)


@pytest.fixture
def knowledge_config(tmp_path):
    catalog_path = tmp_path / "catalog" / "Catalog.csv"
    catalog_path.parent.mkdir()
    catalog_path.write_text(KNOWLEDGE_CATALOG, encoding="utf-8")

    resources = tmp_path / "resources"
    (resources / "CS2255" / "slides").mkdir(parents=True)
    (resources / "CS2255" / ".git").mkdir()
    (resources / "CS2255" / "guide.md").write_text(CS_GUIDE, encoding="utf-8")
    (resources / "CS2255" / "slides" / "week1.pdf").write_bytes(b"%PDF-1.4")
    (resources / "CS2255" / ".DS_Store").write_bytes(b"x")
    (resources / "CS2255" / ".git" / "HEAD").write_text("ref", encoding="utf-8")
    (resources / "MATH101").mkdir()
    (resources / "MATH101" / "guide.md").write_text(MATH_GUIDE, encoding="utf-8")
    (resources / "misc").mkdir()
    (resources / "misc" / "notes.txt").write_text("not a course", encoding="utf-8")

    config = get_active_config()
    config.update(catalog_path=catalog_path, resources_dir=resources)
    return config


@pytest.fixture
def knowledge(knowledge_config):
    return build_knowledge(knowledge_config["catalog_path"], knowledge_config["resources_dir"], knowledge_config)
