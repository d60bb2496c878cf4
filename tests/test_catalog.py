from coursehub.importers.catalog import (
    count_mojibake_markers,
    decode_catalog_bytes,
    load_catalog,
    parse_catalog_rows,
    parse_csv_text,
)

GOOD_TEXT = "Khoa Học Máy Tính,Tiếng Việt,Giải tích,Cấu trúc dữ liệu\n" * 3

CATALOG_CSV = (
    "Trường Đại học - Khoa Học Máy Tính,,,,,,\n"
    "Computer Science Program,,,,,,\n"
    "No.,Mã HP,Course,Tên học phần,Credits,Prerequisite,Note\n"
    "Required Courses,,,,,,\n"
    "1,CS2255,Data Structures,Cấu trúc dữ liệu,3,CS 1001,\n"
    '2,MATH101,"Calculus, I",Giải tích,4 (3+1),,"needs ""calculator"""\n'
    "Major Electives,,,,,,\n"
    "3,IT3001,Networks,Mạng máy tính,3,,\n"
    ",Capstone,,,,,\n"
    "4,IT4999,Capstone Project,Đồ án,6,,\n"
)


def mis_decode(data):
    """UTF-8 bytes read one byte per character as cp1252 (undefined bytes as latin-1)."""
    chars = []
    for byte in data:
        try:
            chars.append(bytes([byte]).decode("cp1252"))
        except UnicodeDecodeError:
            chars.append(chr(byte))
    return "".join(chars)


def test_corrupted_catalog_is_repaired():
    corrupted = mis_decode(GOOD_TEXT.encode("utf-8"))
    assert "Khoa Há»" in corrupted
    assert count_mojibake_markers(corrupted) >= 8

    assert decode_catalog_bytes(corrupted.encode("utf-8")) == GOOD_TEXT


def test_clean_catalog_passes_through():
    assert decode_catalog_bytes(GOOD_TEXT.encode("utf-8")) == GOOD_TEXT


def test_unconfirmed_repair_keeps_original_text():
    suspicious = "Ã" * 10 + " plain words"
    assert decode_catalog_bytes(suspicious.encode("utf-8")) == suspicious


def test_bom_is_stripped():
    assert decode_catalog_bytes(b"\xef\xbb\xbfa,b\n") == "a,b\n"


def test_parse_csv_text_honours_quotes():
    rows = parse_csv_text('a,"b,c","say ""hi"""\n1,2,3\n')
    assert rows == [["a", "b,c", 'say "hi"'], ["1", "2", "3"]]


def test_parse_catalog_rows_tracks_program_and_section():
    catalog = parse_catalog_rows(parse_csv_text(CATALOG_CSV))

    assert sorted(catalog) == ["CS 2255", "IT 3001", "IT 4999", "MATH 101"]

    cs = catalog["CS 2255"]
    assert cs.name_en == "Data Structures"
    assert cs.name_vi == "Cấu trúc dữ liệu"
    assert cs.credits == 3
    assert cs.prerequisite == "CS 1001"
    assert cs.note is None
    assert cs.program == "Computer Science Program"
    assert cs.section == "Required Courses"

    math = catalog["MATH 101"]
    assert math.name_en == "Calculus, I"
    assert math.credits == 4
    assert math.note == 'needs "calculator"'

    assert catalog["IT 3001"].section == "Major Electives"
    assert catalog["IT 4999"].section == "Capstone"


def test_program_row_resets_section():
    rows = [
        ["Required Courses"],
        ["Data Science Program"],
        ["1", "DS1001", "Intro"],
    ]
    course = parse_catalog_rows(rows)["DS 1001"]
    assert course.program == "Data Science Program"
    assert course.section is None


def test_load_catalog_missing_file(tmp_path):
    assert load_catalog(tmp_path / "missing.csv") == {}


def test_load_catalog_from_corrupted_file(tmp_path):
    path = tmp_path / "Catalog.csv"
    path.write_bytes(mis_decode(CATALOG_CSV.encode("utf-8")).encode("utf-8"))

    catalog = load_catalog(path)
    assert catalog["CS 2255"].name_vi == "Cấu trúc dữ liệu"
