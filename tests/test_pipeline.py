from types import SimpleNamespace

import pytest

from resolver.config import BrowserConfig, GenerationConfig
from resolver.models.resolution import ExtractedContent, ResolutionResult, StrategyName
from resolver.services import browser, pipeline
from resolver.services.browser import RenderedBrowserStrategy
from resolver.services.cancellation import CancellationToken
from resolver.services.exceptions import InvalidInput, StrategyDeclined
from resolver.services.extractor import DISCLAIMER
from resolver.services.generation import GenerativeStrategy
from resolver.services.plain_fetch import PlainFetchStrategy
from resolver.services.sources import BRITANNICA, GROKIPEDIA
from resolver.services.strategies import ResolutionStrategy

LONG_BODY = "# Rome\n\n" + "Rome is the capital city of Italy and a major cultural centre. " * 12


class FakeStrategy(ResolutionStrategy):
    def __init__(self, name, result=None, error=None, available=(True, None)):
        self.name = name
        self._result = result
        self._error = error
        self._available = available
        self.calls = []

    def availability(self):
        return self._available

    def attempt(self, topic, candidates, context):
        self.calls.append((topic, list(candidates)))
        if self._error is not None:
            raise self._error
        return self._result


def _content(body=LONG_BODY, source_url=None):
    return ExtractedContent(title="Rome", body=body, source_url=source_url)


def test_first_successful_strategy_wins():
    plain = FakeStrategy(StrategyName.PLAIN_FETCH, _content(source_url="https://www.britannica.com/place/Rome"))
    rendered = FakeStrategy(StrategyName.RENDERED_BROWSER, _content())
    generative = FakeStrategy(StrategyName.GENERATIVE, _content())

    result = pipeline.resolve("Rome", "britannica", strategies=[plain, rendered, generative])

    assert result.strategy_used is StrategyName.PLAIN_FETCH
    assert result.is_fallback is False
    assert result.not_found is False
    assert result.source_url == "https://www.britannica.com/place/Rome"
    assert rendered.calls == [] and generative.calls == []


def test_exceptions_become_declines():
    plain = FakeStrategy(StrategyName.PLAIN_FETCH, error=RuntimeError("boom"))
    rendered = FakeStrategy(StrategyName.RENDERED_BROWSER, error=StrategyDeclined("nope", reason="blocked"))
    generative = FakeStrategy(StrategyName.GENERATIVE, _content())

    result, debug = pipeline.resolve_with_debug("Rome", "britannica", strategies=[plain, rendered, generative])

    assert result.strategy_used is StrategyName.GENERATIVE
    assert result.is_fallback is True
    assert result.source_url == BRITANNICA.search_url("Rome")
    assert any("plain-fetch: error" in note for note in debug.notes)
    assert any("rendered-browser: blocked" in note for note in debug.notes)


def test_content_below_floor_is_not_accepted():
    short = _content(body="# Rome\n\nRome is a city.")
    plain = FakeStrategy(StrategyName.PLAIN_FETCH, short)
    rendered = FakeStrategy(StrategyName.RENDERED_BROWSER, short)

    result, debug = pipeline.resolve_with_debug("Rome", "britannica", strategies=[plain, rendered])

    assert result.not_found is True
    assert any("below floor" in note for note in debug.notes)


def test_floor_is_per_source():
    body = "# Rome\n\n" + "x" * 300
    grok = pipeline.resolve("Rome", "grokipedia", strategies=[FakeStrategy(StrategyName.PLAIN_FETCH, _content(body=body))])
    brit = pipeline.resolve("Rome", "britannica", strategies=[FakeStrategy(StrategyName.PLAIN_FETCH, _content(body=body))])

    assert grok.not_found is False
    assert brit.not_found is True


def test_unavailable_strategies_are_skipped_and_reported():
    rendered = FakeStrategy(StrategyName.RENDERED_BROWSER, _content(), available=(False, "disabled"))
    generative = FakeStrategy(StrategyName.GENERATIVE, _content())

    result, debug = pipeline.resolve_with_debug("Rome", "britannica", strategies=[rendered, generative])

    assert rendered.calls == []
    assert result.strategy_used is StrategyName.GENERATIVE
    assert debug.strategies["rendered-browser"] == {"available": False, "reason": "disabled"}
    assert debug.strategy_available is True


def test_strategies_receive_generated_candidates():
    plain = FakeStrategy(StrategyName.PLAIN_FETCH)

    pipeline.resolve("  Chinese   language ", "grokipedia", strategies=[plain])

    topic, candidates = plain.calls[0]
    assert topic == "Chinese language"
    assert candidates[0] == "https://grokipedia.com/page/Chinese_language"


def test_cancelled_token_short_circuits_to_a_miss():
    plain = FakeStrategy(StrategyName.PLAIN_FETCH, _content())
    token = CancellationToken()
    token.cancel()

    result, debug = pipeline.resolve_with_debug("Rome", "britannica", strategies=[plain], token=token)

    assert plain.calls == []
    assert result.not_found is True
    assert any("cancelled" in note for note in debug.notes)


@pytest.mark.parametrize("topic", [None, "", "   "])
def test_blank_topic_is_invalid_input(topic):
    with pytest.raises(InvalidInput):
        pipeline.resolve(topic, "britannica", strategies=[])


def test_unknown_source_is_invalid_input():
    with pytest.raises(InvalidInput):
        pipeline.resolve("Rome", "wikipedia", strategies=[])


def test_default_source_is_used_when_none_given():
    result = pipeline.resolve("Rome", None, strategies=[])

    assert result.source_url == BRITANNICA.search_url("Rome")


def test_default_strategy_order():
    names = [strategy.name for strategy in pipeline.default_strategies()]

    assert names == [
        StrategyName.PLAIN_FETCH,
        StrategyName.RENDERED_BROWSER,
        StrategyName.GENERATIVE,
    ]


def test_result_invariants_hold_for_every_outcome():
    outcomes = [
        pipeline.resolve("Rome", "britannica", strategies=[FakeStrategy(name, _content())])
        for name in (StrategyName.PLAIN_FETCH, StrategyName.RENDERED_BROWSER, StrategyName.GENERATIVE)
    ]
    outcomes.append(pipeline.resolve("Rome", "britannica", strategies=[]))

    for result in outcomes:
        if result.not_found:
            assert result.content == ""
            assert result.strategy_used is StrategyName.NONE
        assert result.is_fallback == (result.strategy_used is not StrategyName.PLAIN_FETCH)
        if not result.not_found:
            assert result.content.startswith("# ")
            assert len(result.content) >= BRITANNICA.acceptance_floor


def test_miss_record_forces_invariants():
    result = ResolutionResult(
        title="Rome",
        content="leftover",
        source_url="https://www.britannica.com/search?query=Rome",
        is_fallback=False,
        not_found=True,
        strategy_used=StrategyName.PLAIN_FETCH,
    )

    assert result.to_dict() == {
        "title": "Rome",
        "content": "",
        "sourceUrl": "https://www.britannica.com/search?query=Rome",
        "isFallback": True,
        "notFound": True,
        "strategyUsed": "none",
    }


# End-to-end scenarios with real strategies and fake collaborators.


class FakeResponse:
    def __init__(self, status_code=200, text="", url="https://example.com"):
        self.status_code = status_code
        self.text = text
        self.url = url


class FakeSession:
    def __init__(self, routes):
        self._routes = routes
        self.calls = []

    def get(self, url, headers, timeout, allow_redirects):
        self.calls.append(SimpleNamespace(url=url, timeout=timeout))
        response = self._routes.get(url)
        if response is None:
            return FakeResponse(status_code=404, text="Not Found", url=url)
        return response


def _no_browser():
    return RenderedBrowserStrategy(
        BrowserConfig(enabled=True, headless=True, navigation_timeout_ms=1000, settle_ms=0, marker_timeout_ms=100)
    )


def _no_generation():
    return GenerativeStrategy(
        GenerationConfig(provider="xai", api_key=None, model="m", base_url=None, timeout_seconds=1.0)
    )


def test_scenario_clean_static_scrape(monkeypatch):
    monkeypatch.setattr(browser, "sync_playwright", None)
    paragraph = "Albert Einstein was a theoretical physicist whose work reshaped modern physics. "
    paragraphs = "".join(f"<p>{paragraph * 3}Part {index}.</p>" for index in range(5))
    html = (
        "<html><head><title>Albert Einstein</title></head><body>"
        f"<article><h1>Albert Einstein</h1>{paragraphs}<p>{DISCLAIMER} Thank you for your feedback.</p></article>"
        "</body></html>"
    )
    url = "https://www.britannica.com/topic/Albert-Einstein"
    session = FakeSession({url: FakeResponse(text=html, url=url)})
    strategies = [PlainFetchStrategy(session=session), _no_browser(), _no_generation()]

    result = pipeline.resolve("Albert Einstein", "britannica", strategies=strategies)

    assert result.strategy_used is StrategyName.PLAIN_FETCH
    assert result.is_fallback is False
    assert result.not_found is False
    assert result.source_url == url
    assert result.content.startswith("# Albert Einstein\n\n")
    assert "Our editors will review" not in result.content
    assert len(session.calls) == 1


def test_scenario_every_strategy_declines(monkeypatch):
    monkeypatch.setattr(browser, "sync_playwright", None)
    search_url = BRITANNICA.search_url("Qwxz Unknown")
    session = FakeSession(
        {search_url: FakeResponse(text="<p>No results found for Qwxz Unknown</p>", url=search_url)}
    )
    strategies = [PlainFetchStrategy(session=session), _no_browser(), _no_generation()]

    result, debug = pipeline.resolve_with_debug("Qwxz Unknown", "britannica", strategies=strategies)

    assert result.to_dict() == {
        "title": "Qwxz Unknown",
        "content": "",
        "sourceUrl": search_url,
        "isFallback": True,
        "notFound": True,
        "strategyUsed": "none",
    }
    assert debug.strategy_available is False
    assert debug.strategies["rendered-browser"]["reason"] == "playwright_not_installed"
    assert debug.strategies["generative"]["reason"] == "missing_credential"
    assert search_url in debug.tried_urls


def test_scenario_grokipedia_casing_variants():
    plain = FakeStrategy(StrategyName.PLAIN_FETCH)

    result = pipeline.resolve("Chinese language", GROKIPEDIA.name, strategies=[plain])

    _, candidates = plain.calls[0]
    assert {
        "https://grokipedia.com/page/Chinese_language",
        "https://grokipedia.com/page/chinese_language",
        "https://grokipedia.com/page/Chinese_Language",
    } <= set(candidates)
    assert result.source_url == GROKIPEDIA.search_url("Chinese language")


def test_winning_body_is_sanitized():
    body = LONG_BODY + f"\n\n{DISCLAIMER}\n\n\n\nBritannica keeps a record of every edit."
    plain = FakeStrategy(StrategyName.PLAIN_FETCH, _content(body=body))

    result = pipeline.resolve("Rome", "britannica", strategies=[plain])

    assert result.not_found is False
    assert DISCLAIMER not in result.content
    assert "\n\n\n" not in result.content
    assert result.content.endswith("this encyclopedia keeps a record of every edit.")
