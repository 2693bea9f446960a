from concurrent.futures import Future

import pytest

from infinitecanvas.generation import PromptContext
from infinitecanvas.host import FileHost


class StubClient:
    def __init__(self):
        self.calls = []

    def complete(self, model, messages):
        self.calls.append((model, messages))
        return f"idea from {model}"


@pytest.fixture
def file_host(config, scheduler, tmp_path):
    host = FileHost(config, scheduler, canvas_path=tmp_path / "board.canvas",
                    client=StubClient())
    loaded, missing, errors = [], [], []
    host.on_content_loaded = lambda cid, text: loaded.append((cid, text))
    host.on_content_unavailable = missing.append
    host.on_error = errors.append
    host.results = (loaded, missing, errors)
    yield host
    host.close()


def test_reads_relative_to_canvas(file_host, scheduler, tmp_path):
    (tmp_path / "notes.md").write_text("# Notes", encoding="utf-8")
    loaded, missing, _ = file_host.results

    file_host.request_content("notes.md", "load_1")
    file_host.request_content("nope.md", "load_2")
    file_host.close(wait=True)
    scheduler.advance()

    assert loaded == [("load_1", "# Notes")]
    assert missing == ["load_2"]


def test_save_and_persist(file_host, tmp_path):
    file_host.save_content("sub.md", "body")
    file_host.persist('{"nodes": []}')

    assert (tmp_path / "sub.md").read_text(encoding="utf-8") == "body"
    assert (tmp_path / "board.canvas").read_text(encoding="utf-8") == '{"nodes": []}'


def test_write_failures_are_reported(file_host, tmp_path):
    _, _, errors = file_host.results
    file_host.save_content("missing_dir/x.md", "body")
    assert len(errors) == 1 and "missing_dir/x.md" in errors[0]


def test_persist_without_path_is_skipped(config, scheduler):
    host = FileHost(config, scheduler, client=StubClient())
    host.persist("{}")
    host.close()


def test_generation_runs_on_executor(file_host):
    context = PromptContext(model="m", source_text="seed", ancestors=("root",))

    future = file_host.request_generation(context)

    assert isinstance(future, Future)
    assert future.result(timeout=5) == ["idea from m"]
    assert file_host.client.calls == [("m", context.messages())]
