import threading

from form106_extractor import tool_cache
from form106_extractor.tool_cache import ToolCache

from conftest import completed

LANG_LISTING = b'List of available languages in "/usr/share/tessdata/" (3):\neng\nheb\nosd\n'


def _fake_tools(monkeypatch, runnable=(), listing=LANG_LISTING):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        if cmd[0] not in runnable:
            raise FileNotFoundError(cmd[0])
        if cmd[1] == "--list-langs":
            return completed(stdout=listing)
        return completed()

    monkeypatch.setattr(tool_cache.subprocess, "run", fake_run)
    return calls


def test_first_runnable_candidate_is_memoized(monkeypatch):
    calls = _fake_tools(monkeypatch, runnable={"/opt/bin/tesseract"})
    tools = ToolCache(tesseract_candidates=["tesseract", "/opt/bin/tesseract"])

    assert tools.tesseract_path() == "/opt/bin/tesseract"
    assert tools.tesseract_path() == "/opt/bin/tesseract"
    assert len(calls) == 2


def test_missing_tools_resolve_to_none(monkeypatch):
    _fake_tools(monkeypatch)
    tools = ToolCache(tesseract_candidates=["tesseract"], pdftoppm_candidates=["pdftoppm"])
    assert tools.tesseract_path() is None
    assert tools.pdftoppm_path() is None
    assert tools.installed_languages() == frozenset()


def test_installed_languages_skip_header(monkeypatch):
    _fake_tools(monkeypatch, runnable={"tesseract"})
    tools = ToolCache(tesseract_candidates=["tesseract"])
    assert tools.installed_languages() == frozenset({"eng", "heb", "osd"})
    assert tools.missing_languages(["heb", "eng"]) == []


def test_traineddata_file_counts_as_installed(monkeypatch, tmp_path):
    _fake_tools(monkeypatch, runnable={"tesseract"}, listing=b"List of available languages (1):\neng\n")
    (tmp_path / "heb.traineddata").write_bytes(b"")
    tools = ToolCache(tesseract_candidates=["tesseract"], tessdata_candidates=[None, str(tmp_path)])

    assert tools.tessdata_dir() == str(tmp_path)
    assert tools.is_language_available("heb")
    assert tools.missing_languages(["heb", "eng", "ara"]) == ["ara"]


def test_no_tessdata_dir(monkeypatch, tmp_path):
    _fake_tools(monkeypatch)
    tools = ToolCache(tessdata_candidates=[str(tmp_path / "missing")])
    assert tools.tessdata_dir() is None
    assert not tools.is_language_available("heb")


def test_clear_forces_a_new_probe(monkeypatch):
    calls = _fake_tools(monkeypatch, runnable={"pdftoppm"})
    tools = ToolCache(pdftoppm_candidates=["pdftoppm"])
    tools.pdftoppm_path()
    tools.clear()
    tools.pdftoppm_path()
    assert calls == [["pdftoppm", "-v"], ["pdftoppm", "-v"]]


def test_concurrent_lookups_agree(monkeypatch):
    _fake_tools(monkeypatch, runnable={"tesseract"})
    tools = ToolCache(tesseract_candidates=["tesseract"])
    results = []

    def lookup():
        results.append(tools.tesseract_path())

    threads = [threading.Thread(target=lookup) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert results == ["tesseract"] * 8
