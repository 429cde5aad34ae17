"""Tests for read_file, write_file and list_directory."""

import pytest

from agentloop.infra.cancellation import CancellationSignal
from agentloop.models.tool import ToolErrorType
from agentloop.services.edit_monitor import EditFailureMonitor
from agentloop.services.execution_tracker import ExecutionStateTracker
from agentloop.services.tools import edit_tools, file_tools
from agentloop.services.tools.context import ToolContext, write_text
from agentloop.services.tools.file_tools import ListDirectoryTool, ReadFileTool, WriteFileTool


@pytest.fixture
def ctx(tmp_path):
    return ToolContext(tmp_path, ExecutionStateTracker(), EditFailureMonitor())


class TestReadFile:
    @pytest.mark.asyncio
    async def test_read_whole_file(self, ctx, tmp_path):
        (tmp_path / "a.txt").write_text("one\ntwo\n")
        result = await ReadFileTool(ctx).build({"file_path": "a.txt"}).execute(CancellationSignal())
        assert result.success
        assert result.llm_content == "one\ntwo\n"

    @pytest.mark.asyncio
    async def test_paging(self, ctx, tmp_path):
        (tmp_path / "a.txt").write_text("".join(f"line{i}\n" for i in range(10)))
        invocation = ReadFileTool(ctx).build({"file_path": "a.txt", "offset": 2, "limit": 3})
        result = await invocation.execute(CancellationSignal())
        assert result.llm_content == "[Showing lines 3-5 of 10]\nline2\nline3\nline4\n"

    @pytest.mark.asyncio
    async def test_missing_file(self, ctx):
        result = await ReadFileTool(ctx).build({"file_path": "nope.txt"}).execute(CancellationSignal())
        assert result.error.type == ToolErrorType.FILE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_outside_workspace(self, ctx):
        result = await ReadFileTool(ctx).build({"file_path": "../x.txt"}).execute(CancellationSignal())
        assert result.error.type == ToolErrorType.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_directory(self, ctx, tmp_path):
        (tmp_path / "sub").mkdir()
        result = await ReadFileTool(ctx).build({"file_path": "sub"}).execute(CancellationSignal())
        assert result.error.type == ToolErrorType.EXECUTION_ERROR

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, ctx, tmp_path):
        (tmp_path / "a.txt").write_text("x")
        signal = CancellationSignal()
        signal.cancel()
        result = await ReadFileTool(ctx).build({"file_path": "a.txt"}).execute(signal)
        assert result.error.type == ToolErrorType.CANCELLED
        assert result.llm_content == "File read cancelled"

    @pytest.mark.asyncio
    async def test_single_use(self, ctx, tmp_path):
        (tmp_path / "a.txt").write_text("x")
        invocation = ReadFileTool(ctx).build({"file_path": "a.txt"})
        await invocation.execute(CancellationSignal())
        with pytest.raises(RuntimeError):
            await invocation.execute(CancellationSignal())

    def test_locations(self, ctx, tmp_path):
        invocation = ReadFileTool(ctx).build({"file_path": "a.txt", "offset": 4})
        [loc] = invocation.tool_locations()
        assert loc.path == str(tmp_path.resolve() / "a.txt")
        assert loc.line == 4


class TestWriteFile:
    @pytest.mark.asyncio
    async def test_create(self, ctx, tmp_path):
        invocation = WriteFileTool(ctx).build({"file_path": "new/b.txt", "content": "hello"})
        result = await invocation.execute(CancellationSignal())
        assert result.llm_content == "Successfully created and wrote to new file: new/b.txt"
        assert (tmp_path / "new" / "b.txt").read_text() == "hello"
        assert result.file_diff.is_new_file
        assert result.file_diff.old_content == ""

    @pytest.mark.asyncio
    async def test_overwrite(self, ctx, tmp_path):
        (tmp_path / "b.txt").write_text("old")
        invocation = WriteFileTool(ctx).build({"file_path": "b.txt", "content": "new"})
        result = await invocation.execute(CancellationSignal())
        assert result.llm_content == "Successfully overwrote file: b.txt"
        assert result.file_diff.old_content == "old"
        assert not result.file_diff.is_new_file

    @pytest.mark.asyncio
    async def test_cancelled_leaves_file_untouched(self, ctx, tmp_path):
        signal = CancellationSignal()
        signal.cancel()
        invocation = WriteFileTool(ctx).build({"file_path": "b.txt", "content": "x"})
        result = await invocation.execute(signal)
        assert result.llm_content == "File write cancelled"
        assert not (tmp_path / "b.txt").exists()

    def test_empty_path_invalid(self, ctx):
        from agentloop.errors import InvalidParameters

        with pytest.raises(InvalidParameters):
            WriteFileTool(ctx).build({"file_path": "  ", "content": "x"})


class TestWriteText:
    def test_creates_parent_directories(self, tmp_path):
        target = tmp_path / "a" / "b" / "c.txt"
        write_text(target, "h\u00e9llo\n")
        assert target.read_bytes() == "h\u00e9llo\n".encode("utf-8")

    def test_file_tools_share_one_writer(self):
        assert file_tools.write_text is write_text
        assert edit_tools.write_text is write_text

    @pytest.mark.asyncio
    async def test_read_and_write_clear_edit_failures(self, ctx, tmp_path):
        (tmp_path / "a.txt").write_text("x")
        key = str((tmp_path / "a.txt").resolve())
        ctx.edit_failures[key] = 3
        await ReadFileTool(ctx).build({"file_path": "a.txt"}).execute(CancellationSignal())
        assert key not in ctx.edit_failures
        ctx.edit_failures[key] = 3
        await WriteFileTool(ctx).build({"file_path": "a.txt", "content": "y"}).execute(CancellationSignal())
        assert key not in ctx.edit_failures


class TestListDirectory:
    @pytest.mark.asyncio
    async def test_listing(self, ctx, tmp_path):
        (tmp_path / "b.txt").write_text("")
        (tmp_path / "a_dir").mkdir()
        (tmp_path / ".hidden").write_text("")
        result = await ListDirectoryTool(ctx).build({}).execute(CancellationSignal())
        assert result.llm_content == "Directory listing for .:\n[DIR] a_dir\nb.txt"

    @pytest.mark.asyncio
    async def test_show_hidden(self, ctx, tmp_path):
        (tmp_path / ".hidden").write_text("")
        result = await ListDirectoryTool(ctx).build({"show_hidden": True}).execute(CancellationSignal())
        assert ".hidden" in result.llm_content

    @pytest.mark.asyncio
    async def test_empty(self, ctx):
        result = await ListDirectoryTool(ctx).build({}).execute(CancellationSignal())
        assert result.llm_content == "Directory . is empty."

    @pytest.mark.asyncio
    async def test_missing(self, ctx):
        result = await ListDirectoryTool(ctx).build({"dir_path": "nope"}).execute(CancellationSignal())
        assert result.error.type == ToolErrorType.FILE_NOT_FOUND
