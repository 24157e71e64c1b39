"""
Tests for the classifier stage and its two backends.

Backends are exercised against mocked HTTP sessions / a patched openai SDK;
no network calls are made.
"""

from unittest.mock import MagicMock, patch

import openai
import pytest
import requests

from threadwatch.backend.utils.errors import ClassifierError, ConfigError
from threadwatch.config import MonitorConfig
from threadwatch.filters import create_classifier
from threadwatch.filters.classifier import ClassifierFilter, clean_result
from threadwatch.filters.cloudflare import CloudflareClassifier
from threadwatch.filters.openai_compat import OpenAIClassifier, base_url_from_api_url


def cloudflare_response(body, status_code=200):
    response = MagicMock(status_code=status_code)
    response.json.return_value = body
    return response


def cloudflare_with(body, status_code=200):
    session = MagicMock()
    session.post.return_value = cloudflare_response(body, status_code)
    return CloudflareClassifier("acct", "token", "@cf/meta/llama-3.1-8b-instruct", session=session), session


class TestResultCleaning:
    """END truncation and FALSE detection."""

    def test_truncates_at_end_marker(self):
        assert clean_result("ok END trailing junk") == "ok"

    def test_strips_whitespace(self):
        assert clean_result("  summary text \n") == "summary text"

    def test_without_marker_returns_whole_text(self):
        assert clean_result("plain answer") == "plain answer"

    def test_empty_result(self):
        assert clean_result(None) == ""

    @pytest.mark.parametrize("text", ["FALSE", "false", "  False \n", "FaLsE"])
    def test_false_is_invalid_in_any_case(self, text):
        assert ClassifierFilter.is_valid_result(text) is False

    @pytest.mark.parametrize("text", ["ok", "", "FALSE positive", "not false"])
    def test_everything_else_is_valid(self, text):
        assert ClassifierFilter.is_valid_result(text) is True


class TestCloudflareClassifier:
    """Workers AI backend over requests."""

    def test_posts_prompt_and_content(self):
        classifier, session = cloudflare_with(
            {"success": True, "errors": [], "result": {"choices": [{"message": {"content": "deal END"}}]}}
        )

        result = classifier.filter("Selling VPS", "Summarize")

        assert result == "deal"
        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url == "https://api.cloudflare.com/client/v4/accounts/acct/ai/run/@cf/meta/llama-3.1-8b-instruct"
        assert kwargs["headers"]["Authorization"] == "Bearer token"
        assert kwargs["json"]["messages"] == [
            {"role": "system", "content": "Summarize"},
            {"role": "user", "content": "Selling VPS"},
        ]
        assert kwargs["timeout"] == 60

    def test_accepts_response_field(self):
        classifier, _ = cloudflare_with({"success": True, "errors": [], "result": {"response": "FALSE"}})

        assert classifier.filter("x", "p") == "FALSE"

    def test_unsuccessful_body_raises(self):
        classifier, _ = cloudflare_with(
            {"success": False, "errors": [{"code": 10000, "message": "Authentication error"}]},
            status_code=403,
        )

        with pytest.raises(ClassifierError, match="Authentication error"):
            classifier.filter("x", "p")

    def test_empty_result_raises(self):
        classifier, _ = cloudflare_with({"success": True, "errors": [], "result": {}})

        with pytest.raises(ClassifierError):
            classifier.filter("x", "p")

    @pytest.mark.parametrize("body", [
        ["not", "a", "dict"],
        "plain string body",
        {"success": True, "errors": [], "result": "plain string"},
        {"success": True, "errors": [], "result": {"choices": ["not a dict"]}},
        {"success": True, "errors": [], "result": {"choices": [{"message": "hi"}]}},
        {"success": True, "errors": [], "result": {"choices": "abc"}},
        {"success": True, "errors": [], "result": {"response": {"text": "hi"}}},
    ])
    def test_malformed_shapes_raise_classifier_error(self, body):
        classifier, _ = cloudflare_with(body)

        with pytest.raises(ClassifierError):
            classifier.filter("x", "p")

    def test_network_error_raises(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("read timed out")
        classifier = CloudflareClassifier("acct", "token", "model", session=session)

        with pytest.raises(ClassifierError):
            classifier.filter("x", "p")

    def test_non_json_body_raises(self):
        session = MagicMock()
        response = MagicMock(status_code=502)
        response.json.side_effect = ValueError("no json")
        session.post.return_value = response
        classifier = CloudflareClassifier("acct", "token", "model", session=session)

        with pytest.raises(ClassifierError, match="502"):
            classifier.filter("x", "p")


class TestOpenAIClassifier:
    """OpenAI-compatible backend via the openai SDK."""

    def test_base_url_strips_completions_suffix(self):
        assert base_url_from_api_url("https://api.deepseek.com/v1/chat/completions") == "https://api.deepseek.com/v1"
        assert base_url_from_api_url("https://api.openai.com/v1/") == "https://api.openai.com/v1"
        assert base_url_from_api_url("") is None

    def test_sends_chat_completion(self):
        with patch("openai.OpenAI") as mock_openai:
            mock_client = MagicMock()
            mock_response = MagicMock()
            mock_response.choices = [MagicMock()]
            mock_response.choices[0].message.content = "Great deal END ignore"
            mock_client.chat.completions.create.return_value = mock_response
            mock_openai.return_value = mock_client

            classifier = OpenAIClassifier("https://api.openai.com/v1/chat/completions", "sk-test", "gpt-4o-mini")
            result = classifier.filter("content", "prompt")

            assert result == "Great deal"
            init_kwargs = mock_openai.call_args.kwargs
            assert init_kwargs["base_url"] == "https://api.openai.com/v1"
            assert init_kwargs["timeout"] == 60
            assert init_kwargs["max_retries"] == 0
            call_kwargs = mock_client.chat.completions.create.call_args.kwargs
            assert call_kwargs["model"] == "gpt-4o-mini"
            assert call_kwargs["messages"][0] == {"role": "system", "content": "prompt"}
            assert call_kwargs["messages"][1] == {"role": "user", "content": "content"}

    def test_sdk_error_becomes_classifier_error(self):
        with patch("openai.OpenAI") as mock_openai:
            mock_client = MagicMock()
            mock_client.chat.completions.create.side_effect = openai.OpenAIError("rate limited")
            mock_openai.return_value = mock_client

            classifier = OpenAIClassifier("", "sk-test", "gpt-4o-mini")

            with pytest.raises(ClassifierError, match="rate limited"):
                classifier.filter("content", "prompt")

    def test_no_choices_raises(self):
        with patch("openai.OpenAI") as mock_openai:
            mock_client = MagicMock()
            mock_client.chat.completions.create.return_value = MagicMock(choices=[])
            mock_openai.return_value = mock_client

            classifier = OpenAIClassifier("", "sk-test", "gpt-4o-mini")

            with pytest.raises(ClassifierError):
                classifier.filter("content", "prompt")


class TestCreateClassifier:
    """Backend registry selected by ai_provider."""

    def test_cloudflare_from_config(self):
        config = MonitorConfig(use_ai_filter=True, ai_provider="cloudflare",
                               cf_account_id="acct", cf_token="tok", model="m")

        classifier = create_classifier(config)

        assert isinstance(classifier, CloudflareClassifier)
        assert classifier.account_id == "acct"

    def test_openai_from_config(self):
        config = MonitorConfig(use_ai_filter=True, ai_provider="openai",
                               openai_api_key="sk-test", openai_model="gpt-4o-mini")

        with patch("openai.OpenAI"):
            classifier = create_classifier(config)

        assert isinstance(classifier, OpenAIClassifier)
        assert classifier.model == "gpt-4o-mini"

    def test_unknown_provider_raises_config_error(self):
        config = MagicMock(ai_provider="llamafile")

        with pytest.raises(ConfigError, match="llamafile"):
            create_classifier(config)
