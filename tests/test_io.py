"""Tests for CSV, JSON and Excel import/export."""

import json

import pytest

from conftest import make_record
from envmon_processing.constants import DataStatus
from envmon_processing.data.io import (
    export_rows,
    export_to_csv,
    export_to_excel,
    export_to_json,
    import_to_session,
    map_columns,
    parse_csv_text,
    parse_json_text,
    read_csv,
    read_excel,
    validate_import_data,
)

HEADER = "样品编号,监测项目,测量值,测定日期,分析人员"


@pytest.fixture
def records():
    rs = [
        make_record("D1", "pH", 7.5),
        make_record("D2", "COD", 18.0, sample_id="WS20240102", unit="mg/L"),
    ]
    rs[1].status = DataStatus.APPROVED
    return rs


class TestParseCsv:
    def test_chinese_headers(self):
        text = f"{HEADER}\nWS20240101,pH,7.5,2024-01-01,张三\n"
        result = parse_csv_text(text)
        assert result.success
        assert result.total_rows == result.imported_rows == 1
        assert result.data == [
            {
                "sample_id": "WS20240101",
                "parameter": "pH",
                "value": 7.5,
                "measurement_date": "2024-01-01",
                "analyst": "张三",
            }
        ]

    def test_quoted_fields(self):
        text = (
            "sampleId,parameter,value,measurementDate,analyst,instrument\n"
            'WS20240101,pH,7.5,2024-01-01,张三,"meter, ""A"""\n'
            'WS20240102,pH,7.6,2024-01-01,张三,"two\nlines"\n'
        )
        result = parse_csv_text(text)
        assert result.success
        assert result.data[0]["instrument"] == 'meter, "A"'
        assert result.data[1]["instrument"] == "two\nlines"

    def test_fields_are_trimmed_and_blank_lines_skipped(self):
        text = f"{HEADER}\n WS20240101 , pH , 7.5 ,2024-01-01, 张三 \n\n"
        result = parse_csv_text(text)
        assert result.total_rows == 1
        assert result.data[0]["sample_id"] == "WS20240101"
        assert result.data[0]["analyst"] == "张三"
        assert result.data[0]["value"] == 7.5

    def test_delimiter_only_line_is_an_invalid_row(self):
        text = (
            f"{HEADER}\n"
            "WS20240101,pH,7.5,2024-01-01,张三\n"
            ",,,,\n"
            "WS20240102,pH,7.6,2024-01-01,张三\n"
        )
        result = parse_csv_text(text)
        assert not result.success
        assert result.total_rows == 3
        assert result.imported_rows == 2
        assert {e.row for e in result.errors} == {3}
        assert {"sample_id", "parameter", "analyst"} <= {e.field for e in result.errors}

    def test_bare_carriage_return_is_reported(self):
        text = (
            f"{HEADER}\n"
            "WS20240101,pH,7.5,2024-01-01,张三\n"
            "WS20240102,pH,7.6,2024-01-01,A\rB\n"
            "WS20240103,pH,7.7,2024-01-01,李四\n"
        )
        result = parse_csv_text(text)
        assert not result.success
        assert result.total_rows == 3
        assert result.imported_rows == 2
        assert [e.row for e in result.errors] == [3]
        assert result.errors[0].message.startswith("row 3: could not parse line")
        assert [r["sample_id"] for r in result.data] == ["WS20240101", "WS20240103"]

    def test_custom_delimiter(self):
        text = "sample_id;parameter;value;measurement_date;analyst\nWS20240101;DO;6.2;2024-01-01;李四"
        result = parse_csv_text(text, ";")
        assert result.success
        assert result.data[0]["parameter"] == "DO"

    def test_invalid_rows_are_reported_with_line_numbers(self):
        text = f"{HEADER}\nWS20240101,pH,7.5,2024-01-01,张三\nWS20240102,pH,abc,2024-01-01,\n"
        result = parse_csv_text(text)
        assert not result.success
        assert result.imported_rows == 1
        assert len(result.data) == 2
        assert {e.row for e in result.errors} == {3}
        assert {e.field for e in result.errors} == {"value", "analyst"}
        assert all(e.message.startswith("row 3: ") for e in result.errors)

    def test_skip_invalid(self):
        text = f"{HEADER}\nWS20240101,pH,7.5,2024-01-01,张三\n,pH,7.5,2024-01-01,张三\n"
        result = parse_csv_text(text, skip_invalid=True)
        assert result.success
        assert len(result.data) == 1
        assert result.errors[0].row == 3

    def test_no_header_with_mapping(self):
        mapping = map_columns(
            ["column1", "column2", "column3", "column4", "column5"],
            ["sample_id", "parameter", "value", "measurement_date", "analyst"],
        )
        result = parse_csv_text(
            "WS20240101,pH,7.5,2024-01-01,张三",
            has_header=False,
            column_mapping=mapping,
        )
        assert result.success
        assert result.data[0]["sample_id"] == "WS20240101"

    def test_no_header_errors_count_from_one(self):
        mapping = {"column1": "sample_id", "column2": "parameter"}
        result = parse_csv_text("WS20240101,pH", has_header=False, column_mapping=mapping)
        assert not result.success
        assert {e.row for e in result.errors} == {1}

    @pytest.mark.parametrize("text", ["", "   \n  "])
    def test_empty_input(self, text):
        result = parse_csv_text(text)
        assert not result.success
        assert result.errors[0].row == 0
        assert result.total_rows == 0

    def test_unmapped_columns_are_dropped(self):
        text = f"{HEADER},备注\nWS20240101,pH,7.5,2024-01-01,张三,note\n"
        assert "备注" not in parse_csv_text(text).data[0]


def test_read_csv_file(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text(f"{HEADER}\nWS20240101,pH,7.5,2024-01-01,张三\n", encoding="utf-8")
    assert read_csv(path).imported_rows == 1
    missing = read_csv(tmp_path / "missing.csv")
    assert not missing.success
    assert missing.errors[0].row == 0


class TestExport:
    def test_csv_with_chinese_headers(self, records):
        text = export_to_csv(records)
        lines = text.split("\n")
        assert lines[0] == (
            "样品编号,样品类型,监测项目,测量值,单位,测定日期,测定时间,"
            "分析人员,使用仪器,分析方法,状态,是否有效"
        )
        assert len(lines) == 3
        assert lines[2].endswith(",approved,是")
        assert not text.endswith("\n")

    def test_csv_english_headers_and_no_header(self, records):
        text = export_to_csv(records, use_chinese_headers=False)
        assert text.split("\n")[0].startswith("sampleId,sampleType,parameter")
        assert text.split("\n")[1].endswith(",pending,True")
        assert len(export_to_csv(records, include_headers=False).split("\n")) == 2

    def test_csv_quotes_special_characters(self):
        record = make_record("D1", instrument='meter, "A"')
        line = export_to_csv([record], include_headers=False)
        assert '"meter, ""A"""' in line

    def test_csv_quotes_carriage_returns(self):
        record = make_record("D1", analyst="A\rB")
        line = export_to_csv([record], include_headers=False)
        assert '"A\rB"' in line

    def test_csv_empty(self):
        assert export_to_csv([]) == ""

    def test_json(self, records):
        data = json.loads(export_to_json(records))
        assert len(data) == 2
        assert list(data[0]) == [
            "sampleId",
            "sampleType",
            "parameter",
            "value",
            "unit",
            "measurementDate",
            "measurementTime",
            "analyst",
            "instrument",
            "method",
            "status",
            "isValid",
        ]
        assert data[1]["status"] == "approved"
        assert "张三" in export_to_json(records)

    def test_export_rows(self, records):
        rows = export_rows(records, use_chinese_headers=False)
        assert rows[0]["isValid"] is True
        assert rows[0]["status"] == "pending"


class TestRoundTrip:
    def test_csv(self, records):
        result = parse_csv_text(export_to_csv(records))
        assert result.success
        assert result.data == [r.input_fields() for r in records]

    def test_csv_with_semicolons_and_quotes(self):
        record = make_record("D1", method='a;b "c"\nd')
        result = parse_csv_text(export_to_csv([record], ";"), ";")
        assert result.data == [record.input_fields()]

    def test_csv_with_carriage_return(self):
        record = make_record("D1", analyst="A\rB")
        result = parse_csv_text(export_to_csv([record]))
        assert result.success
        assert result.errors == []
        assert result.data == [record.input_fields()]

    def test_json(self, records):
        result = parse_json_text(export_to_json(records))
        assert result.success
        for row, record in zip(result.data, records):
            expected = record.input_fields()
            expected.update(status=record.status.value, is_valid=record.is_valid)
            assert row == expected

    def test_excel(self, records, tmp_path):
        path = export_to_excel(records, tmp_path / "out.xlsx")
        assert path.exists()
        result = read_excel(path)
        assert result.success
        assert result.total_rows == 2
        assert result.data[1]["sample_id"] == "WS20240102"
        assert result.data[1]["value"] == 18.0
        assert result.data[1]["measurement_date"] == "2024-01-01"
        assert result.data[1]["unit"] == "mg/L"


def test_read_excel_bad_file(tmp_path):
    path = tmp_path / "bad.xlsx"
    path.write_text("not a workbook", encoding="utf-8")
    result = read_excel(path)
    assert not result.success
    assert result.errors[0].row == 0


class TestParseJson:
    def test_malformed(self):
        result = parse_json_text("{oops")
        assert not result.success
        assert result.errors[0].row == 0

    def test_not_an_array(self):
        assert not parse_json_text('{"sampleId": "WS20240101"}').success

    def test_row_errors(self):
        text = json.dumps([{"sampleId": "WS20240101"}, "junk"])
        result = parse_json_text(text)
        assert not result.success
        assert {e.row for e in result.errors} == {1, 2}
        assert result.imported_rows == 0


def test_validate_import_data():
    rows = [
        {
            "sampleId": "WS20240101",
            "parameter": "pH",
            "value": 7.5,
            "measurementDate": "2024-01-01",
            "analyst": "张三",
        },
        {"sampleId": "WS20240102", "parameter": "pH", "value": "x"},
    ]
    result = validate_import_data(rows)
    assert not result.is_valid
    assert (result.total_rows, result.valid_rows, result.invalid_rows) == (2, 1, 1)
    assert {e.row for e in result.errors} == {2}
    assert result.valid_data == [rows[0]]


def test_import_to_session(session):
    text = (
        f"{HEADER}\n"
        "WS20240101,pH,7.5,2024-01-01,张三\n"
        "WS20240102,COD,,2024-01-01,张三\n"
    )
    parsed = parse_csv_text(text)
    summary = import_to_session(session, parsed.data)
    assert not summary.success
    assert (summary.imported, summary.total) == (1, 2)
    assert summary.errors[0].row == 2
    stored = session.get_all_monitoring_data()
    assert len(stored) == 2
    assert [r.is_valid for r in stored] == [True, False]
    assert stored[0].value == 7.5
