from types import SimpleNamespace

import pytest
import requests

from resolver.services import fetch
from resolver.services.cancellation import CancellationToken
from resolver.services.candidates import generate_candidates
from resolver.services.exceptions import NetworkError, ResolutionCancelled
from resolver.services.plain_fetch import PlainFetchStrategy, has_no_results
from resolver.services.sources import BRITANNICA, GROKIPEDIA
from resolver.services.strategies import AttemptContext


class FakeResponse:
    def __init__(self, status_code=200, text="", url="https://example.com"):
        self.status_code = status_code
        self.text = text
        self.url = url


class FakeSession:
    """Serves canned responses by URL; anything unknown is a 404."""

    def __init__(self, routes):
        self._routes = routes
        self.calls = []

    def get(self, url, headers, timeout, allow_redirects):
        self.calls.append(SimpleNamespace(url=url, headers=headers, timeout=timeout))
        response = self._routes.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return FakeResponse(status_code=404, text="<h1>Page not found</h1>", url=url)
        return response


def article_page(title, paragraph_count=5, extra=""):
    paragraphs = "".join(
        f"<p>Paragraph {index} about {title} describes its history, geography and "
        f"lasting cultural influence in considerable detail.</p>"
        for index in range(paragraph_count)
    )
    return (
        f"<html><head><title>{title}</title></head><body><nav>Menu</nav>"
        f"<article><h1>{title}</h1>{paragraphs}{extra}</article></body></html>"
    )


def _context(profile=BRITANNICA, token=None):
    return AttemptContext(profile=profile, token=token or CancellationToken())


def test_first_successful_candidate_wins():
    candidates = generate_candidates("Ancient Rome", BRITANNICA)
    session = FakeSession(
        {
            candidates[1]: FakeResponse(text=article_page("ancient Rome"), url=candidates[1]),
            candidates[2]: FakeResponse(text=article_page("Never fetched"), url=candidates[2]),
        }
    )
    context = _context()

    extracted = PlainFetchStrategy(session=session).attempt("Ancient Rome", candidates, context)

    assert extracted is not None
    assert extracted.source_url == candidates[1]
    assert extracted.body.startswith("# ancient Rome\n\n")
    assert [call.url for call in session.calls] == candidates[:2]
    assert context.debug.tried_urls == candidates[:2]


def test_redirected_final_url_is_reported():
    candidates = generate_candidates("Rome", BRITANNICA)
    final = "https://www.britannica.com/place/Rome"
    session = FakeSession({candidates[0]: FakeResponse(text=article_page("Rome"), url=final)})

    extracted = PlainFetchStrategy(session=session).attempt("Rome", candidates, _context())

    assert extracted.source_url == final


def test_not_found_pages_and_short_bodies_are_skipped():
    candidates = generate_candidates("Rome", BRITANNICA)
    session = FakeSession(
        {
            candidates[0]: FakeResponse(
                text="<html><head><title>Page Not Found</title></head><body><p>Sorry.</p></body></html>",
                url=candidates[0],
            ),
            candidates[1]: FakeResponse(text=article_page("Rome", paragraph_count=1), url=candidates[1]),
            candidates[2]: FakeResponse(text=article_page("Rome"), url=candidates[2]),
        }
    )

    extracted = PlainFetchStrategy(session=session).attempt("Rome", candidates, _context())

    assert extracted.source_url == candidates[2]


def test_unreachable_source_raises_network_error():
    candidates = generate_candidates("Rome", BRITANNICA)
    routes = {url: requests.ConnectionError("unreachable") for url in candidates}
    routes[BRITANNICA.search_url("Rome")] = requests.Timeout("slow")
    session = FakeSession(routes)

    with pytest.raises(NetworkError) as excinfo:
        PlainFetchStrategy(session=session).attempt("Rome", candidates, _context())

    assert excinfo.value.reason == "network"
    assert len(session.calls) == len(candidates) + 1


def test_http_errors_decline_without_network_error():
    candidates = generate_candidates("Rome", BRITANNICA)
    context = _context()

    assert PlainFetchStrategy(session=FakeSession({})).attempt("Rome", candidates, context) is None
    assert any("search request failed" in note for note in context.debug.notes)


def test_article_mentioning_404_deep_in_text_is_kept():
    candidates = generate_candidates("Rome", BRITANNICA)
    extra = "<p>In the year 404 the western imperial court moved its residence to Ravenna.</p>"
    session = FakeSession(
        {candidates[0]: FakeResponse(text=article_page("Rome", paragraph_count=8, extra=extra), url=candidates[0])}
    )

    extracted = PlainFetchStrategy(session=session).attempt("Rome", candidates, _context())

    assert extracted is not None
    assert "In the year 404" in extracted.body


def test_network_errors_move_on_to_next_candidate():
    candidates = generate_candidates("Rome", BRITANNICA)
    session = FakeSession(
        {
            candidates[0]: requests.Timeout("slow"),
            candidates[1]: requests.ConnectionError("reset"),
            candidates[2]: FakeResponse(text=article_page("Rome"), url=candidates[2]),
        }
    )

    extracted = PlainFetchStrategy(session=session).attempt("Rome", candidates, _context())

    assert extracted.source_url == candidates[2]


def test_search_fallback_follows_first_article_link():
    candidates = generate_candidates("Albert Einstein", BRITANNICA)
    search_url = BRITANNICA.search_url("Albert Einstein")
    target = "https://www.britannica.com/biography/Albert-Einstein-physicist"
    search_html = (
        '<html><body><a href="/search?page=2">next</a>'
        '<a href="/biography/Albert-Einstein-physicist">Albert Einstein</a>'
        '<a href="/topic/relativity">Relativity</a></body></html>'
    )
    session = FakeSession(
        {
            search_url: FakeResponse(text=search_html, url=search_url),
            target: FakeResponse(text=article_page("Albert Einstein"), url=target),
        }
    )
    context = _context()

    extracted = PlainFetchStrategy(session=session).attempt("Albert Einstein", candidates, context)

    assert extracted.source_url == target
    assert context.debug.tried_urls[-2:] == [search_url, target]


def test_search_without_results_declines():
    candidates = generate_candidates("Xyzzy", GROKIPEDIA)
    search_url = GROKIPEDIA.search_url("Xyzzy")
    session = FakeSession(
        {
            search_url: FakeResponse(
                text='<html><body><p>No results found</p><a href="/page/Other">x</a></body></html>',
                url=search_url,
            )
        }
    )
    context = _context(GROKIPEDIA)

    assert PlainFetchStrategy(session=session).attempt("Xyzzy", candidates, context) is None
    assert any("no results" in note for note in context.debug.notes)
    assert session.calls[-1].url == search_url


def test_grokipedia_pages_are_extracted_as_markdown():
    candidates = generate_candidates("Chinese language", GROKIPEDIA)
    html = (
        "<html><body><main><article><h1>Chinese language</h1>"
        "<p>Chinese is a group of languages spoken natively by the ethnic Han Chinese majority.</p>"
        "<h2>History</h2><p>The earliest attested written Chinese consists of <strong>oracle bone</strong> inscriptions.</p>"
        "</article></main></body></html>"
    )
    session = FakeSession({candidates[0]: FakeResponse(text=html, url=candidates[0])})

    extracted = PlainFetchStrategy(session=session).attempt("Chinese language", candidates, _context(GROKIPEDIA))

    assert extracted.body.startswith("# Chinese language")
    assert "## History" in extracted.body
    assert "**oracle bone**" in extracted.body


def test_cancelled_token_stops_before_any_request():
    candidates = generate_candidates("Rome", BRITANNICA)
    session = FakeSession({})
    token = CancellationToken()
    token.cancel()

    with pytest.raises(ResolutionCancelled):
        PlainFetchStrategy(session=session).attempt("Rome", candidates, _context(token=token))
    assert session.calls == []


def test_fetch_page_reports_non_success_status():
    session = FakeSession({})

    payload = fetch.fetch_page("https://example.com/missing", session=session)

    assert payload["status_code"] == 404
    assert "error" in payload


def test_fetch_page_clamps_timeout_to_remaining_budget():
    session = FakeSession({"https://example.com/a": FakeResponse(text="ok", url="https://example.com/a")})
    now = [100.0]
    token = CancellationToken(budget_seconds=3.0, clock=lambda: now[0])

    payload = fetch.fetch_page("https://example.com/a", session=session, timeout=8.0, token=token)

    assert payload["html"] == "ok"
    assert session.calls[0].timeout == pytest.approx(3.0)


@pytest.mark.parametrize(
    "html,expected",
    [
        ("<p>No results found for xyz</p>", True),
        ("<p>Showing 0 results</p>", True),
        ("<p>Showing 10 results</p>", False),
        ("<p>Results for Rome</p>", False),
    ],
)
def test_has_no_results(html, expected):
    assert has_no_results(html, BRITANNICA.no_results_phrases) is expected
