import threading

from conftest import RecordingGate, ScriptedProvider, call, calls, text

from codeswarm.core.loop import LoopOptions, StopReason, WriteAccess, run_agent_loop
from codeswarm.llm.client import LLMError
from codeswarm.prompts.system import build_initial_messages
from codeswarm.tools.base import PermissionKind, ToolContext
from codeswarm.tools.registry import create_default_registry


def _options(provider, workspace, gate=None, **kwargs):
    return LoopOptions(
        provider=provider,
        tools=create_default_registry(),
        tool_context=ToolContext(session_id="sess_test", cwd=workspace),
        permission_gate=gate or RecordingGate(),
        **kwargs,
    )


def _messages(workspace, task="do the thing"):
    return build_initial_messages(task, cwd=workspace)


def _tool_messages(provider, index):
    return [m for m in provider.calls[index]["messages"] if m["role"] == "tool"]


def test_final_answer_on_first_response(workspace):
    provider = ScriptedProvider([text("all done")])

    result = run_agent_loop(_messages(workspace), _options(provider, workspace))

    assert result.success is True
    assert result.final_response == "all done"
    assert result.iterations == 1
    assert result.stop_reason == StopReason.COMPLETED
    assert result.tool_calls == []
    assert result.token_usage == {"input": 10, "output": 5}


def test_tool_call_result_is_fed_back(workspace):
    provider = ScriptedProvider([call("read_file", file_path="README.md"), text("read it")])

    result = run_agent_loop(_messages(workspace), _options(provider, workspace))

    assert result.success is True
    assert result.iterations == len(provider.calls) == 2
    assert [r.name for r in result.tool_calls] == ["read_file"]

    second = provider.calls[1]["messages"]
    assistant = [m for m in second if m["role"] == "assistant"]
    assert len(assistant) == 1
    assert assistant[0]["tool_calls"][0]["function"]["name"] == "read_file"
    tool_msgs = _tool_messages(provider, 1)
    assert tool_msgs[0]["tool_call_id"] == assistant[0]["tool_calls"][0]["id"]
    assert "L2: hello world" in tool_msgs[0]["content"]


def test_every_call_of_a_response_gets_a_result_in_order(workspace):
    provider = ScriptedProvider(
        [
            calls(("read_file", {"file_path": "README.md"}), ("list_dir", {"directory_path": "src"})),
            text("ok"),
        ]
    )

    result = run_agent_loop(_messages(workspace), _options(provider, workspace))

    assert [r.name for r in result.tool_calls] == ["read_file", "list_dir"]
    tool_msgs = _tool_messages(provider, 1)
    assert len(tool_msgs) == 2
    assert "app.py" in tool_msgs[1]["content"]


def test_unknown_tool_is_reported_and_loop_continues(workspace):
    provider = ScriptedProvider([call("launch_rockets", count=3), text("fine")])

    result = run_agent_loop(_messages(workspace), _options(provider, workspace))

    assert result.success is True
    record = result.tool_calls[0]
    assert record.result.success is False
    assert record.result.error == "Tool not found: launch_rockets"
    assert record.result.title == "Unknown tool"
    assert _tool_messages(provider, 1)[0]["content"] == "Error: Tool not found: launch_rockets"


def test_invalid_arguments_fail_validation(workspace):
    provider = ScriptedProvider([call("read_file", offset=3), text("fine")])

    result = run_agent_loop(_messages(workspace), _options(provider, workspace))

    failed = result.tool_calls[0].result
    assert failed.success is False
    assert failed.error.startswith("Invalid arguments for read_file")
    assert "file_path" in failed.error
    assert result.success is True


def test_unparseable_arguments_are_reported(workspace):
    broken = call("read_file")
    broken.function_calls[0].arguments = "{not json"
    provider = ScriptedProvider([broken, text("fine")])

    result = run_agent_loop(_messages(workspace), _options(provider, workspace))

    assert "arguments must be valid JSON" in result.tool_calls[0].result.error


def test_permission_denial_blocks_the_write(workspace):
    gate = RecordingGate(deny_kinds={PermissionKind.FILE_WRITE})
    provider = ScriptedProvider(
        [call("write_file", file_path="new.txt", content="x"), text("gave up")]
    )

    result = run_agent_loop(_messages(workspace), _options(provider, workspace, gate=gate))

    assert result.success is True
    denied = result.tool_calls[0].result
    assert denied.success is False
    assert denied.error.startswith("Permission denied")
    assert not (workspace / "new.txt").exists()
    assert gate.requests[0][0] == PermissionKind.FILE_WRITE


def test_read_only_tools_skip_the_gate(workspace):
    gate = RecordingGate()
    provider = ScriptedProvider([call("read_file", file_path="README.md"), text("ok")])

    run_agent_loop(_messages(workspace), _options(provider, workspace, gate=gate))

    assert gate.requests == []


def test_max_iterations_exhaustion(workspace):
    warnings = []
    # Never produces a final answer
    provider = ScriptedProvider(default=call("list_dir"))

    result = run_agent_loop(
        _messages(workspace),
        _options(provider, workspace, max_iterations=3, on_warning=warnings.append),
    )

    assert result.success is False
    assert result.stop_reason == StopReason.MAX_ITERATIONS
    assert result.iterations == 3
    assert len(provider.calls) == 3
    assert len(result.tool_calls) == 3
    assert len(warnings) == 1
    assert "max iterations (3)" in warnings[0]


def test_exhaustion_keeps_last_text(workspace):
    response = call("list_dir")
    response.text = "still working"
    provider = ScriptedProvider(default=response)

    result = run_agent_loop(_messages(workspace), _options(provider, workspace, max_iterations=2))

    assert result.final_response == "still working"


def test_provider_error_ends_the_loop(workspace):
    errors = []
    provider = ScriptedProvider(
        [call("list_dir"), LLMError("upstream exploded", code="server_error", status_code=502)]
    )

    result = run_agent_loop(
        _messages(workspace), _options(provider, workspace, on_error=errors.append)
    )

    assert result.success is False
    assert result.stop_reason == StopReason.ERROR
    assert result.final_response == "Error: upstream exploded"
    assert result.iterations == 2
    assert errors == ["upstream exploded"]


def test_abort_before_first_iteration(workspace):
    provider = ScriptedProvider([text("never")])
    options = _options(provider, workspace)
    options.tool_context.abort.set()

    result = run_agent_loop(_messages(workspace), options)

    assert result.stop_reason == StopReason.ABORTED
    assert result.iterations == 0
    assert provider.calls == []


def test_abort_is_checked_before_each_tool_dispatch(workspace):
    abort = threading.Event()
    provider = ScriptedProvider(
        [
            calls(("list_dir", {}), ("read_file", {"file_path": "README.md"})),
            text("never reached"),
        ]
    )
    options = _options(
        provider,
        workspace,
        is_aborted=abort.is_set,
        on_tool_result=lambda name, result: abort.set(),
    )

    result = run_agent_loop(_messages(workspace), options)

    assert result.stop_reason == StopReason.ABORTED
    assert [r.name for r in result.tool_calls] == ["list_dir"]
    assert len(provider.calls) == 1


def test_hooks_fire_in_order(workspace):
    seen = []
    provider = ScriptedProvider([call("list_dir"), text("bye")])

    run_agent_loop(
        _messages(workspace),
        _options(
            provider,
            workspace,
            on_text=lambda t: seen.append(("text", t)),
            on_tool_call=lambda name, args: seen.append(("call", name)),
            on_tool_result=lambda name, result: seen.append(("result", name, result.success)),
        ),
    )

    assert seen == [("call", "list_dir"), ("result", "list_dir", True), ("text", "bye")]


class _DenyingWriteAccess:
    def __init__(self):
        self.requested = []
        self.recorded = []

    def request_write_access(self, path):
        self.requested.append(path)
        return WriteAccess(granted=False, reason="File locked by another agent (agent_9): x", conflict=True)

    def record_modification(self, path):
        self.recorded.append(path)


class _GrantingWriteAccess(_DenyingWriteAccess):
    def request_write_access(self, path):
        self.requested.append(path)
        return WriteAccess(granted=True)


def test_write_access_denial_becomes_failed_result(workspace):
    access = _DenyingWriteAccess()
    provider = ScriptedProvider([call("write_file", file_path="a.txt", content="1"), text("ok")])

    result = run_agent_loop(
        _messages(workspace), _options(provider, workspace, write_access=access)
    )

    assert result.tool_calls[0].result.error.startswith("File locked by another agent")
    assert access.requested == [str(workspace / "a.txt")]
    assert access.recorded == []
    assert not (workspace / "a.txt").exists()


def test_successful_writes_are_recorded(workspace):
    access = _GrantingWriteAccess()
    provider = ScriptedProvider(
        [
            call("write_file", file_path="notes/a.txt", content="1"),
            call("edit_file", file_path="src/app.py", old_string="'hello'", new_string="'bye'"),
            text("ok"),
        ]
    )

    result = run_agent_loop(
        _messages(workspace), _options(provider, workspace, write_access=access)
    )

    expected = [str(workspace / "notes" / "a.txt"), str(workspace / "src" / "app.py")]
    assert result.files_modified == expected
    assert access.recorded == expected
    assert "'bye'" in (workspace / "src" / "app.py").read_text()


def test_turn_events_are_emitted(workspace, captured_events):
    provider = ScriptedProvider([call("list_dir"), text("done")])

    run_agent_loop(_messages(workspace), _options(provider, workspace))

    types = [e["type"] for e in captured_events]
    assert types[0] == "turn.started"
    assert types[-1] == "turn.completed"
    assert "item.started" in types
    assert captured_events[-1]["stop_reason"] == "completed"
    assert captured_events[-1]["iterations"] == 2
