import json

import pytest
from click.testing import CliRunner

from form106_extractor import cli
from form106_extractor.errors import ErrorCode, IngestionFailure, Stage
from form106_extractor.extractor import ExtractionMethod, IngestionResult

from conftest import MINIMAL_PDF


@pytest.fixture
def fake_pipeline(monkeypatch, record):
    """Replaces the pipeline; files named bad*.pdf fail."""
    seen = []

    class FakePipeline:
        def ingest(self, file_path, options=None):
            seen.append((file_path.name, options))
            if file_path.name.startswith("bad"):
                return IngestionResult.failed(
                    IngestionFailure(Stage.EXTRACT, ErrorCode.IMAGE_ONLY, "PDF appears to be image-only"),
                    ExtractionMethod.TEXT,
                )
            return IngestionResult.ok(record, ExtractionMethod.TEXT)

    monkeypatch.setattr(cli, "IngestionPipeline", FakePipeline)
    return seen


def _write_pdfs(folder, *names):
    for name in names:
        (folder / name).write_bytes(MINIMAL_PDF)


def test_single_file(tmp_path, fake_pipeline):
    _write_pdfs(tmp_path, "a.pdf")
    result = CliRunner().invoke(cli.main, [str(tmp_path / "a.pdf"), "-v"])

    assert result.exit_code == 0, result.output
    assert "Method: text" in result.output
    assert "employeeId: 123456782" in result.output


def test_folder_with_output_dir(tmp_path, fake_pipeline):
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    _write_pdfs(inbox, "a.pdf", "b.PDF")
    (inbox / "notes.txt").write_text("skip me")
    out = tmp_path / "out"

    result = CliRunner().invoke(cli.main, [str(inbox), "--output-dir", str(out)])

    assert result.exit_code == 0, result.output
    assert [name for name, _ in fake_pipeline] == ["a.pdf", "b.PDF"]
    combined = json.loads((out / "all_results.json").read_text(encoding="utf-8"))
    assert set(combined) == {"a.pdf", "b.PDF"}
    single = json.loads((out / "a_results.json").read_text(encoding="utf-8"))
    assert single["success"] is True
    assert single["data"]["taxYear"] == 2023


def test_any_failure_exits_non_zero(tmp_path, fake_pipeline):
    _write_pdfs(tmp_path, "good.pdf", "bad.pdf")
    result = CliRunner().invoke(cli.main, [str(tmp_path)])

    assert result.exit_code == 1
    assert "IMAGE_ONLY" in result.output
    assert "1 succeeded, 1 failed" in result.output


def test_empty_folder(tmp_path, fake_pipeline):
    result = CliRunner().invoke(cli.main, [str(tmp_path)])
    assert result.exit_code == 1
    assert fake_pipeline == []


def test_options_are_forwarded(tmp_path, fake_pipeline):
    _write_pdfs(tmp_path, "a.pdf")
    args = [
        str(tmp_path / "a.pdf"), "--ocr", "-l", "heb", "--dpi", "300",
        "--timeout", "9", "--ocr-timeout", "45", "--max-size-mb", "2", "-p", "pw",
    ]
    result = CliRunner().invoke(cli.main, args)

    assert result.exit_code == 0, result.output
    options = fake_pipeline[0][1]
    assert options.enable_ocr_fallback
    assert options.password == "pw"
    assert options.timeout_s == 9
    assert options.max_file_size_bytes == 2 * 1024 * 1024
    assert options.ocr.languages == ("heb",)
    assert options.ocr.dpi == 300
    assert options.ocr.timeout_s == 45


def test_default_languages(tmp_path, fake_pipeline):
    _write_pdfs(tmp_path, "a.pdf")
    CliRunner().invoke(cli.main, [str(tmp_path / "a.pdf")])
    options = fake_pipeline[0][1]
    assert not options.enable_ocr_fallback
    assert options.ocr.languages == cli.OCR_LANGUAGES
