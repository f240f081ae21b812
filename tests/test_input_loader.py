import json

import pytest

from speechbatch.batch.input_loader import RowError, load_batch_file, parse_batch_rows
from speechbatch.core.exceptions import BatchInputError


class TestParseBatchRows:

    def test_rows_become_items_in_order(self):
        items = parse_batch_rows([
            {"SCRIPT": "Hello", "FILENAME": "intro"},
            {"script": "World", "filename": "outro", "Voice": "nova", "SPEED": "1.2"},
        ])

        assert [item.text for item in items] == ["Hello", "World"]
        assert items[1].target_file_base_name == "outro"
        assert dict(items[1].per_job_options) == {"voice": "nova", "speed": "1.2"}

    def test_any_bad_row_rejects_the_whole_batch(self):
        rows = [
            {"SCRIPT": "ok", "FILENAME": "one"},
            {"SCRIPT": "  ", "FILENAME": "two"},
            {"SCRIPT": "three", "FILENAME": ""},
        ]

        with pytest.raises(BatchInputError) as exc_info:
            parse_batch_rows(rows)

        errors = exc_info.value.row_errors
        assert errors == [RowError(2, "SCRIPT is empty"), RowError(3, "FILENAME is empty")]
        assert "row 2" in str(exc_info.value)

    def test_missing_columns(self):
        with pytest.raises(BatchInputError) as exc_info:
            parse_batch_rows([{"TEXT": "hi"}])
        assert len(exc_info.value.row_errors) == 2

    def test_empty_batch(self):
        with pytest.raises(BatchInputError):
            parse_batch_rows([])

    def test_non_mapping_row(self):
        with pytest.raises(BatchInputError):
            parse_batch_rows([["Hello", "intro"]])

    def test_items_are_immutable(self):
        item = parse_batch_rows([{"SCRIPT": "a", "FILENAME": "b", "VOICE": "x"}])[0]
        with pytest.raises(TypeError):
            item.per_job_options["voice"] = "y"


class TestLoadBatchFile:

    def test_csv_with_bom(self, tmp_path):
        path = tmp_path / "batch.csv"
        path.write_text("﻿Script,Filename,Voice\nHello there,greeting,nova\nBye,farewell,\n", encoding="utf-8")

        items = load_batch_file(path)

        assert len(items) == 2
        assert items[0].per_job_options["voice"] == "nova"
        assert "voice" not in items[1].per_job_options

    def test_json_list(self, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps([{"SCRIPT": "One", "FILENAME": "1"}]), encoding="utf-8")

        assert load_batch_file(path)[0].text == "One"

    def test_json_items_wrapper(self, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text(json.dumps({"items": [{"script": "One", "filename": "1"}]}), encoding="utf-8")

        assert len(load_batch_file(path)) == 1

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "batch.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(BatchInputError):
            load_batch_file(path)

    def test_missing_file_and_unknown_type(self, tmp_path):
        with pytest.raises(BatchInputError):
            load_batch_file(tmp_path / "absent.csv")
        with pytest.raises(BatchInputError):
            load_batch_file(tmp_path / "batch.xlsx")
