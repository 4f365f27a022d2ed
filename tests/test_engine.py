from __future__ import annotations

from convoflow.engine import (
    AssistantMessage,
    EngineFailure,
    OpaqueBlock,
    OpaqueMessage,
    QueryOptions,
    ResultMessage,
    TextBlock,
    ToolUseBlock,
    TurnStart,
    UserEcho,
    parse_engine_message,
)


def test_system_init_is_turn_start() -> None:
    message = parse_engine_message({"type": "system", "subtype": "init", "session_id": "abc", "tools": []})
    assert isinstance(message, TurnStart)
    assert message.session_id == "abc"


def test_other_system_subtypes_are_opaque() -> None:
    message = parse_engine_message({"type": "system", "subtype": "compact_boundary"})
    assert isinstance(message, OpaqueMessage)
    assert message.subtype == "compact_boundary"


def test_init_without_token_is_opaque() -> None:
    assert isinstance(parse_engine_message({"type": "system", "subtype": "init"}), OpaqueMessage)


def test_assistant_blocks_keep_order_and_tolerate_unknown_kinds() -> None:
    message = parse_engine_message(
        {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "thinking", "thinking": "hmm"},
                    {"type": "text", "text": "hello"},
                    {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
                ]
            },
        }
    )
    assert isinstance(message, AssistantMessage)
    blocks = message.message.content
    assert isinstance(blocks, list)
    assert isinstance(blocks[0], OpaqueBlock)
    assert isinstance(blocks[1], TextBlock)
    assert isinstance(blocks[2], ToolUseBlock)
    assert blocks[2].input == {"command": "ls"}


def test_assistant_string_content() -> None:
    message = parse_engine_message({"type": "assistant", "message": {"content": "plain"}})
    assert isinstance(message, AssistantMessage)
    assert message.message.content == "plain"


def test_result_success_flag() -> None:
    ok = parse_engine_message({"type": "result", "subtype": "success", "result": "done", "duration_ms": 5})
    failed = parse_engine_message({"type": "result", "subtype": "error_during_execution"})
    assert isinstance(ok, ResultMessage) and ok.success
    assert isinstance(failed, ResultMessage) and not failed.success


def test_user_echo_and_failure() -> None:
    assert isinstance(parse_engine_message({"type": "user", "message": {"content": "hi"}}), UserEcho)
    failure = parse_engine_message({"type": "error", "error": "overloaded"})
    assert isinstance(failure, EngineFailure)
    assert failure.error == "overloaded"


def test_malformed_known_message_degrades_to_opaque() -> None:
    message = parse_engine_message({"type": "assistant", "message": {}})
    assert isinstance(message, OpaqueMessage)
    assert message.type == "assistant"


def test_non_mapping_input_is_opaque() -> None:
    message = parse_engine_message(42)
    assert isinstance(message, OpaqueMessage)
    assert message.type == "int"


def test_parsed_messages_pass_through() -> None:
    start = TurnStart(session_id="abc")
    assert parse_engine_message(start) is start


def test_query_options_default_to_fresh_start() -> None:
    assert QueryOptions().resume is None
    assert QueryOptions(resume="abc").resume == "abc"


def test_result_payload_fields_are_passed_through() -> None:
    fractional = parse_engine_message(
        {"type": "result", "subtype": "success", "result": "hi", "duration_ms": 1234.5}
    )
    structured = parse_engine_message({"type": "result", "subtype": "success", "result": {"answer": 42}})

    assert isinstance(fractional, ResultMessage)
    assert fractional.duration_ms == 1234.5
    assert isinstance(structured, ResultMessage)
    assert structured.result == {"answer": 42}


def test_tool_use_input_need_not_be_a_mapping() -> None:
    message = parse_engine_message(
        {
            "type": "assistant",
            "message": {"content": [{"type": "tool_use", "id": "t1", "name": "Echo", "input": "raw text"}]},
        }
    )
    assert isinstance(message, AssistantMessage)
    block = message.message.content[0]
    assert isinstance(block, ToolUseBlock)
    assert block.input == "raw text"
