from __future__ import annotations

import pytest
from pydantic import ValidationError

from flowmesh_ai.agent_core.schemas import (
    ActionModelConfiguration,
    AgentNodeType,
    ConditionalNodeResult,
    ExceptionNodeResult,
    GenericChatMessage,
    InputNodeResult,
    KnownMetadataFields,
    MessageRole,
    ModelNodeResult,
    NodeResultAdapter,
    OutputNodeResult,
    ProviderType,
    StringFormatterNodeResult,
    valid_messages,
)
from flowmesh_ai.agent_core.schemas.chat import last_user_message
from flowmesh_ai.agent_core.schemas.results import _NodeResultBase, join_texts


def _input(message: str = "5") -> InputNodeResult:
    return InputNodeResult(node_id="in", node_name="Input", message=message)


class TestTextRendering:
    def test_text_variants(self):
        assert _input("5").text() == "5"
        assert ModelNodeResult(node_id="m", node_name="M", message="five").text() == "five"
        assert StringFormatterNodeResult(node_id="s", node_name="S", message="x=5").text() == "x=5"

    def test_output_joins_inputs_with_newline(self):
        output = OutputNodeResult(
            node_id="out",
            node_name="Output",
            inputs=[_input("a"), ModelNodeResult(node_id="m", node_name="M", message="b")],
        )

        assert output.text() == "a\nb"

    def test_conditional_renders_its_inputs(self):
        result = ConditionalNodeResult(node_id="c", node_name="C", inputs=[_input("7")], next_node_ids=["b"])

        assert result.text() == "7"
        assert result.next_node_ids == ["b"]

    def test_exception_renders_message(self):
        result = ExceptionNodeResult(node_id="m", node_name="M", node_type=AgentNodeType.model, message="failed")

        assert result.text() == "failed"

    def test_join_texts_of_nothing_is_empty(self):
        assert join_texts([]) == ""

    def test_base_result_cannot_be_built(self):
        with pytest.raises(TypeError):
            _NodeResultBase(node_id="x", node_name="X", node_type=AgentNodeType.input)


class TestResultUnion:
    def test_nested_results_keep_their_variant(self):
        output = OutputNodeResult(
            node_id="out",
            node_name="Output",
            inputs=[
                ExceptionNodeResult(node_id="m", node_name="M", node_type=AgentNodeType.model, message="x"),
                _input(),
            ],
        )

        decoded = NodeResultAdapter.validate_json(output.model_dump_json(by_alias=True))

        assert isinstance(decoded, OutputNodeResult)
        assert isinstance(decoded.inputs[0], ExceptionNodeResult)
        assert isinstance(decoded.inputs[1], InputNodeResult)

    def test_exception_result_requires_node_type(self):
        with pytest.raises(ValidationError):
            ExceptionNodeResult(node_id="m", node_name="M", message="x")

    def test_variant_node_types(self):
        assert _input().node_type == AgentNodeType.input
        assert OutputNodeResult(node_id="o", node_name="O").node_type == AgentNodeType.output


class TestChatSchemas:
    def test_message_constructors(self):
        assert GenericChatMessage.user("hi").role == MessageRole.user
        assert GenericChatMessage.assistant("yo").role == MessageRole.assistant
        assert GenericChatMessage.system("be brief").role == MessageRole.system

    def test_valid_messages_drops_blank_content(self):
        messages = [GenericChatMessage.user("a"), GenericChatMessage.assistant("  "), GenericChatMessage.user("")]

        assert valid_messages(messages) == [messages[0]]

    def test_last_user_message(self):
        messages = [GenericChatMessage.user("first"), GenericChatMessage.assistant("x"), GenericChatMessage.user("last")]

        assert last_user_message(messages).content == "last"
        assert last_user_message([GenericChatMessage.system("s")]) is None

    def test_model_configuration_metadata_accessors(self):
        config = ActionModelConfiguration(
            provider_type=ProviderType.anthropic,
            model_name="claude",
            metadata={
                KnownMetadataFields.temperature: "0.2",
                KnownMetadataFields.max_tokens: 512,
                KnownMetadataFields.thinking_enabled: "true",
                KnownMetadataFields.top_k: "",
            },
        )

        assert config.metadata_float(KnownMetadataFields.temperature) == 0.2
        assert config.metadata_int(KnownMetadataFields.max_tokens) == 512
        assert config.metadata_int(KnownMetadataFields.top_k) is None
        assert config.metadata_bool(KnownMetadataFields.thinking_enabled) is True
        assert config.metadata_bool(KnownMetadataFields.budget_thinking_tokens) is False

    def test_model_configuration_accepts_wire_aliases(self):
        config = ActionModelConfiguration.model_validate(
            {"ProviderType": "gemini", "ModelName": "gemini-2.0-flash", "Streaming": False}
        )

        assert config.provider_type == ProviderType.gemini
        assert config.streaming is False
