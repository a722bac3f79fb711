"""Test the offload store and session storage layout."""

import threading

import pytest

from contextAgent.config.settings import StorageSettings
from contextAgent.persistence.offload import OffloadStore, safe_filename_component
from contextAgent.persistence.storage import SessionStorage
from contextAgent.utils.error_handler import OffloadError


@pytest.fixture
def store():
    return OffloadStore()


class TestOffloadStore:
    """Write-once persistence"""

    @pytest.mark.asyncio
    async def test_write_reports_size_and_lines(self, store, tmp_path):
        directory = await store.ensure_dir(tmp_path / "observations")

        saved = await store.write(directory, "read_file_c1_x.txt", "line1\nline2\nзначение")

        assert saved.path == directory / "read_file_c1_x.txt"
        assert saved.path.read_text(encoding="utf-8") == "line1\nline2\nзначение"
        assert saved.line_count == 3
        assert saved.size_bytes == len("line1\nline2\nзначение".encode("utf-8"))
        assert saved.size_mb == "0.00"

    @pytest.mark.asyncio
    async def test_existing_file_is_never_overwritten(self, store, tmp_path):
        await store.write(tmp_path, "out.txt", "first")

        with pytest.raises(OffloadError) as exc_info:
            await store.write(tmp_path, "out.txt", "second")

        assert exc_info.value.path == str(tmp_path / "out.txt")
        assert (tmp_path / "out.txt").read_text(encoding="utf-8") == "first"

    @pytest.mark.asyncio
    async def test_missing_directory_is_an_offload_error(self, store, tmp_path):
        with pytest.raises(OffloadError):
            await store.write(tmp_path / "missing", "out.txt", "data")

    def test_safe_filename_component(self):
        assert safe_filename_component("mcp/jira:create issue") == "mcp_jira_create_issue"
        assert safe_filename_component("../..") == "unknown"
        assert len(safe_filename_component("x" * 500)) == 80


class TestSessionStorage:
    """Session-scoped directories"""

    def test_layout(self, tmp_path):
        storage = SessionStorage("abc", StorageSettings(root=str(tmp_path)))

        assert storage.session_dir == tmp_path / "abc"
        assert storage.observations_dir == tmp_path / "abc" / "observations"
        assert storage.tool_outputs_dir == tmp_path / "abc" / "tool-outputs"
        assert not storage.session_dir.exists()


class TestSessionIds:
    """Identifiers handed out by a session"""

    def test_truncation_ids_are_unique_under_threads(self, make_session):
        session = make_session()
        seen = []
        lock = threading.Lock()

        def take():
            for _ in range(100):
                value = session.next_truncation_id()
                with lock:
                    seen.append(value)

        threads = [threading.Thread(target=take) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(seen) == list(range(1, 801))
        assert session.truncation_id == 800

    def test_injected_id_factory(self, make_session):
        session = make_session()
        assert [session.new_id(), session.new_id()] == ["id1", "id2"]
