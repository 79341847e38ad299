"""
Tests for the OpenAI-compatible generation client: message building,
reasoning-block cleanup and retry behaviour
"""
import httpx
import pytest
from unittest.mock import Mock, patch
from openai import APITimeoutError, OpenAIError
from app.services import openai_service
from app.services.errors import GenerationError
from app.services.openai_service import OpenAIService, clean_model_response


def completion(content):
    return Mock(choices=[Mock(message=Mock(content=content))])


def timeout_error():
    return APITimeoutError(request=httpx.Request("POST", "http://localhost/v1/chat/completions"))


class TestOpenAIService:
    @pytest.fixture
    def service(self):
        service = OpenAIService.__new__(OpenAIService)
        service.client = Mock()
        service.model = "chat-model"
        service.extraction_model = "extraction-model"
        return service

    @pytest.fixture
    def create(self, service):
        return service.client.chat.completions.create

    def test_generate_builds_grounded_prompt(self, service, create):
        """History roles kept, context and question in the last user message, <think> removed"""
        create.return_value = completion("<think>pensando...</think>\nDerecho tiene 10 semestres.")
        history = [
            {"role": "user", "content": "hola"},
            {"role": "system", "content": "ignorar"},
            {"role": "assistant", "content": ""},
        ]
        answer = service.generate("RESUMEN: Información del programa DERECHO", "cuantos semestres?", history)

        assert answer == "Derecho tiene 10 semestres."
        messages = create.call_args.kwargs["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "user"]
        assert messages[-1]["content"] == (
            "CONTEXTO ACADÉMICO:\nRESUMEN: Información del programa DERECHO\n\nPREGUNTA DEL ESTUDIANTE:\ncuantos semestres?"
        )
        assert create.call_args.kwargs["model"] == "chat-model"

    def test_extraction_uses_extraction_model(self, service, create):
        create.return_value = completion('{"programs": []}')
        assert service.extract_entities("materias de derecho") == '{"programs": []}'
        assert create.call_args.kwargs["model"] == "extraction-model"
        assert create.call_args.kwargs["temperature"] == 0.0
        assert "materias de derecho" in create.call_args.kwargs["messages"][1]["content"]

    def test_retries_on_timeout(self, service, create):
        create.side_effect = [timeout_error(), completion("ok")]
        with patch.object(openai_service.time, "sleep") as sleep:
            assert service.chat_completion([{"role": "user", "content": "hola"}]) == "ok"
        sleep.assert_called_once_with(2)

    def test_gives_up_after_max_retries(self, service, create):
        create.side_effect = timeout_error()
        with patch.object(openai_service.time, "sleep") as sleep:
            with pytest.raises(GenerationError):
                service.chat_completion([{"role": "user", "content": "hola"}])
        assert create.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [2, 4]

    def test_api_error_not_retried(self, service, create):
        create.side_effect = OpenAIError("model not found")
        with pytest.raises(GenerationError):
            service.chat_completion([{"role": "user", "content": "hola"}])
        assert create.call_count == 1

    def test_empty_content(self, service, create):
        create.return_value = completion(None)
        assert service.chat_completion([{"role": "user", "content": "hola"}]) == ""


class TestCleanModelResponse:
    def test_strips_think_blocks(self):
        assert clean_model_response("<think>a\nb</think> Respuesta ") == "Respuesta"

    def test_none(self):
        assert clean_model_response(None) == ""
