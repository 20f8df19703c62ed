from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from proposal_api.services.language import (
    LanguageDetector,
    LanguageLLMOut,
    detect_language_simple,
    get_language_name,
    normalize_language_code,
)


class _FakeCompletions:
    def __init__(self, outcomes: list) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "hang":
            await asyncio.sleep(10)
        return LanguageLLMOut(language=outcome)


def _client(outcomes: list) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions(outcomes)))


async def _no_sleep(_delay: float) -> None:
    return None


def test_model_answer_is_normalized() -> None:
    client = _client([" ES "])
    detector = LanguageDetector(client, sleep=_no_sleep)

    assert asyncio.run(detector.detect("Propuesta técnica para la licitación")) == "es"
    call = client.chat.completions.calls[0]
    assert call["response_model"] is LanguageLLMOut
    assert call["messages"][1]["content"] == "Propuesta técnica para la licitación"


def test_sample_is_limited_to_first_thousand_characters() -> None:
    client = _client(["en"])
    detector = LanguageDetector(client, sleep=_no_sleep)

    asyncio.run(detector.detect("a" * 5000))

    assert len(client.chat.completions.calls[0]["messages"][1]["content"]) == 1000


def test_invalid_model_answer_defaults_to_english() -> None:
    detector = LanguageDetector(_client(["Spanish language"]), sleep=_no_sleep)

    assert asyncio.run(detector.detect("texto")) == "en"


def test_rate_limits_are_retried_then_answer_used() -> None:
    client = _client([Exception("429 Too Many Requests"), "pl"])
    detector = LanguageDetector(client, max_retries=2, sleep=_no_sleep)

    assert asyncio.run(detector.detect("Zażółć gęślą jaźń")) == "pl"
    assert len(client.chat.completions.calls) == 2


def test_failures_default_to_english() -> None:
    detector = LanguageDetector(_client([RuntimeError("boom")]), sleep=_no_sleep)

    assert asyncio.run(detector.detect("texto")) == "en"


def test_timeouts_default_to_english() -> None:
    detector = LanguageDetector(_client(["hang"]), timeout=0.01, sleep=_no_sleep)

    assert asyncio.run(detector.detect("texto")) == "en"


def test_blank_text_skips_the_model() -> None:
    client = _client([])
    detector = LanguageDetector(client, sleep=_no_sleep)

    assert asyncio.run(detector.detect("   ")) == "en"
    assert client.chat.completions.calls == []


def test_without_client_uses_heuristic() -> None:
    detector = LanguageDetector(None)

    assert asyncio.run(detector.detect("La propuesta de la empresa para el servicio")) == "es"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Zamówienie publiczne na usługi", "pl"),
        ("Año de la licitación", "es"),
        ("los servicios con garantia", "es"),
        ("The company delivers quality services", "en"),
    ],
)
def test_detect_language_simple(text: str, expected: str) -> None:
    assert detect_language_simple(text) == expected


def test_language_helpers() -> None:
    assert normalize_language_code("DE") == "de"
    assert normalize_language_code("spa") == "spa"
    assert normalize_language_code("") == "en"
    assert normalize_language_code(None) == "en"
    assert get_language_name("es") == "Spanish"
    assert get_language_name("xx") == "Unknown"
