import asyncio
import json
import threading

from sitebuilder.events.emitter import StreamEmitter
from sitebuilder.events.types import SENTINEL_FRAME
from sitebuilder.exceptions import ProviderError, StageFailedError, TransientProviderError
from sitebuilder.pipeline import (
    CancellationRegistry,
    CancellationToken,
    ControllerState,
    GenerationRequest,
    StageController,
)
from sitebuilder.pipeline.runner import GenerationRunner
from sitebuilder.pipeline.strategies import component_specs
from sitebuilder.planner.base import GenerationStrategy
from sitebuilder.services.project import ProjectService


def _doc(title: str) -> str:
    return (
        "<!DOCTYPE html><html><head><style>body{color:#123}</style></head>"
        f"<body><nav><a href=\"index.html\">Home</a></nav><h1>{title}</h1></body></html>"
    )


def _frames(emitter: StreamEmitter) -> list[dict]:
    events = []
    for frame in emitter.drain_nowait():
        if frame == SENTINEL_FRAME:
            continue
        events.append(json.loads(frame[len("data: "):]))
    return events


def _run(controller: StageController, request: GenerationRequest, project_id=None):
    return asyncio.run(controller.run(request, project_id=project_id))


def _controller(provider, settings, **kwargs):
    emitter = StreamEmitter(request_id="req", keepalive_interval=0)
    return StageController(provider, settings=settings, emitter=emitter, **kwargs), emitter


def test_single_page_generation(scripted_provider, test_settings) -> None:
    provider = scripted_provider("Here you go:\n```html\n" + _doc("Hello") + "\n```")
    controller, emitter = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="a landing page", strategy=GenerationStrategy.SINGLE))

    assert outcome.state == ControllerState.COMPLETED
    assert outcome.html.startswith("<!DOCTYPE html>")
    assert outcome.html.endswith("</html>")
    types = [event["type"] for event in _frames(emitter)]
    assert types[0] == "plan_complete"
    assert "delta" in types
    assert types[-1] == "page_complete"
    assert types.index("stage_start") < types.index("stage_complete")


def test_multi_page_generation_shares_navigation_and_style(scripted_provider, test_settings) -> None:
    provider = scripted_provider(_doc("Home"), _doc("About"), _doc("Contact"))
    controller, emitter = _controller(provider, test_settings)
    request = GenerationRequest(
        prompt="a bakery website",
        strategy=GenerationStrategy.MULTI,
        page_names=["index", "about", "contact"],
    )

    outcome = _run(controller, request, project_id="proj-1")

    assert outcome.state == ControllerState.COMPLETED
    assert [page.page_name for page in outcome.pages] == ["index", "about", "contact"]
    assert [page.page_index for page in outcome.pages] == [0, 1, 2]
    assert len(provider.calls) == 3

    first_prompt = provider.calls[0][-1]["content"]
    second_prompt = provider.calls[1][-1]["content"]
    assert "/preview/proj-1/about" in first_prompt
    assert "/preview/proj-1/contact" in first_prompt
    assert "body{color:#123}" not in first_prompt
    assert "body{color:#123}" in second_prompt

    completed = [event for event in _frames(emitter) if event["type"] == "page_complete"]
    assert [event["page_name"] for event in completed] == ["index", "about", "contact"]
    assert all(event["project_id"] == "proj-1" for event in completed)


def test_multi_page_resume_skips_finished_pages(scripted_provider, test_settings) -> None:
    provider = scripted_provider(_doc("Contact"))
    controller, _ = _controller(provider, test_settings)
    request = GenerationRequest(
        prompt="a bakery website",
        strategy=GenerationStrategy.MULTI,
        page_names=["index", "about", "contact"],
        stage_index=2,
        accumulated_html=_doc("Home"),
    )

    outcome = _run(controller, request, project_id="proj-1")

    assert [page.page_name for page in outcome.pages] == ["contact"]
    assert len(provider.calls) == 1
    assert "body{color:#123}" in provider.calls[0][-1]["content"]


def test_out_of_range_resume_index_restarts(scripted_provider, test_settings) -> None:
    provider = scripted_provider(_doc("Home"), _doc("About"))
    controller, _ = _controller(provider, test_settings)
    request = GenerationRequest(
        prompt="site",
        strategy=GenerationStrategy.MULTI,
        page_names=["index", "about"],
        stage_index=9,
    )

    outcome = _run(controller, request, project_id="proj-1")

    assert [page.page_name for page in outcome.pages] == ["index", "about"]


def test_target_page_regenerates_one_page(scripted_provider, test_settings) -> None:
    provider = scripted_provider(_doc("About"))
    controller, _ = _controller(provider, test_settings)
    request = GenerationRequest(
        prompt="site",
        strategy=GenerationStrategy.MULTI,
        page_names=["index", "about", "contact"],
        target_page="ABOUT",
    )

    outcome = _run(controller, request, project_id="proj-1")

    assert [page.page_name for page in outcome.pages] == ["about"]
    assert len(provider.calls) == 1


def test_planning_call_decides_strategy(scripted_provider, test_settings) -> None:
    plan_text = json.dumps({"strategy": "multi", "title": "Gym", "pages": ["index", "classes"]})
    provider = scripted_provider(plan_text, _doc("Home"), _doc("Classes"))
    controller, emitter = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="a gym website"), project_id="gym")

    assert outcome.state == ControllerState.COMPLETED
    assert outcome.plan.strategy == GenerationStrategy.MULTI
    assert [page.page_name for page in outcome.pages] == ["index", "classes"]
    plan_event = _frames(emitter)[0]
    assert plan_event["type"] == "plan_complete"
    assert plan_event["planned_pages"] == ["index", "classes"]
    assert plan_event["fallback"] is False


def test_unparseable_plan_falls_back_to_single(scripted_provider, test_settings) -> None:
    provider = scripted_provider("I would make one page.", _doc("Only"))
    controller, _ = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="something"))

    assert outcome.state == ControllerState.COMPLETED
    assert outcome.plan.fallback
    assert len(outcome.pages) == 1


def test_transient_failures_are_retried(scripted_provider, test_settings) -> None:
    provider = scripted_provider(
        TransientProviderError("rate limited"),
        TransientProviderError("timeout"),
        _doc("Third time lucky"),
    )
    controller, emitter = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="p", strategy=GenerationStrategy.SINGLE))

    assert outcome.state == ControllerState.COMPLETED
    assert outcome.stage_results[0].retries == 2
    events = _frames(emitter)
    assert [event["attempt"] for event in events if event["type"] == "stage_retry"] == [1, 2]
    complete = [event for event in events if event["type"] == "stage_complete"][0]
    assert complete["retries"] == 2


def test_retry_budget_is_bounded(scripted_provider, test_settings) -> None:
    provider = scripted_provider(
        TransientProviderError("rate limited"),
        TransientProviderError("rate limited"),
        TransientProviderError("rate limited"),
    )
    controller, emitter = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="p", strategy=GenerationStrategy.SINGLE))

    assert outcome.state == ControllerState.FAILED
    assert isinstance(outcome.error, StageFailedError)
    assert outcome.error.retries == 2
    assert outcome.error.retryable is True
    assert len(provider.calls) == 3
    assert any(event["type"] == "stage_failed" for event in _frames(emitter))


def test_fatal_errors_fail_without_retry(scripted_provider, test_settings) -> None:
    provider = scripted_provider(ProviderError("invalid api key"))
    controller, _ = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="p", strategy=GenerationStrategy.SINGLE))

    assert outcome.state == ControllerState.FAILED
    assert outcome.error.retries == 0
    assert outcome.error.retryable is False
    assert len(provider.calls) == 1


def test_cancellation_stops_between_chunks(scripted_provider, test_settings) -> None:
    provider = scripted_provider(_doc("Home"), _doc("About"), _doc("Contact"), chunk_size=8)
    token = CancellationToken("req")

    def cancel_on_second_call(call_number: int) -> None:
        if call_number == 2:
            token.cancel("client disconnected")

    provider.on_chunk = cancel_on_second_call
    controller, _ = _controller(provider, test_settings, token=token)
    request = GenerationRequest(prompt="p", strategy=GenerationStrategy.MULTI, page_names=["index", "about", "contact"])

    outcome = _run(controller, request, project_id="proj-1")

    assert outcome.state == ControllerState.CANCELLED
    assert outcome.pages == []
    assert len(provider.calls) == 2


def _streamed_content(events: list[dict]) -> str:
    """Join delta content the way a client does, honouring stage_retry resets."""
    assembled = ""
    for event in events:
        if event["type"] == "delta":
            assembled += event["choices"][0]["delta"]["content"]
        elif event["type"] == "stage_retry" and event.get("reset"):
            assembled = ""
    return assembled


def test_cancelled_call_is_drained_and_discarded(scripted_provider, test_settings) -> None:
    document = _doc("Home")
    provider = scripted_provider(document, chunk_size=8)
    token = CancellationToken("req")

    def cancel_after_two_chunks(call_number: int) -> None:
        if provider.pulled == 2:
            token.cancel("client disconnected")

    provider.on_chunk = cancel_after_two_chunks
    controller, emitter = _controller(provider, test_settings, token=token)

    outcome = _run(controller, GenerationRequest(prompt="p", strategy=GenerationStrategy.SINGLE))
    emitter.flush_deltas()

    assert outcome.state == ControllerState.CANCELLED
    assert outcome.pages == []
    assert provider.pulled == -(-len(document) // 8)
    assert _streamed_content(_frames(emitter)) == document[:16]


def test_retry_after_partial_output_resets_stage_content(scripted_provider, test_settings) -> None:
    document = _doc("Recovered")
    provider = scripted_provider(
        ("<html><body>PARTIAL-GARBAGE\n", TransientProviderError("connection reset")),
        document,
    )
    controller, emitter = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="p", strategy=GenerationStrategy.SINGLE))
    emitter.flush_deltas()

    assert outcome.state == ControllerState.COMPLETED
    assert outcome.html == document
    assert outcome.stage_results[0].retries == 1
    events = _frames(emitter)
    retry = [event for event in events if event["type"] == "stage_retry"]
    assert len(retry) == 1 and retry[0]["reset"] is True
    assert _streamed_content(events) == document


def test_long_form_sections_are_chained(scripted_provider, test_settings) -> None:
    plan_text = json.dumps({"strategy": "long", "sections": ["intro", "body", "outro"]})
    provider = scripted_provider(
        plan_text,
        "<header>Top</header>",
        "<section>Middle</section>",
        "```html\n<footer>End</footer>\n```",
    )
    controller, _ = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="a long essay page"))

    assert outcome.state == ControllerState.COMPLETED
    assert outcome.plan.strategy == GenerationStrategy.LONG
    assert outcome.html == "<header>Top</header>\n<section>Middle</section>\n<footer>End</footer>"
    assert outcome.pages[0].total_sections == 3
    assert "<header>Top</header>" in provider.calls[2][-1]["content"]


def test_hierarchical_layers_rewrite_the_document(scripted_provider, test_settings) -> None:
    provider = scripted_provider(_doc("Structure"), _doc("Styled"), _doc("Interactive"))
    controller, _ = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="dashboard", strategy=GenerationStrategy.HIERARCHICAL))

    assert outcome.state == ControllerState.COMPLETED
    assert "Interactive" in outcome.html
    assert "<h1>Structure</h1>" in provider.calls[1][-1]["content"]
    assert "<h1>Styled</h1>" in provider.calls[2][-1]["content"]


def test_two_stage_component_failure_uses_placeholder(scripted_provider, test_settings) -> None:
    needs = json.dumps({"components": [{"name": "hero", "purpose": "intro"}, {"name": "pricing"}]})
    provider = scripted_provider(
        needs,
        "Architecture: hero then pricing",
        "<section>Hero</section>",
        ProviderError("content filtered"),
        _doc("Assembled"),
    )
    controller, _ = _controller(provider, test_settings)

    outcome = _run(controller, GenerationRequest(prompt="saas app", strategy=GenerationStrategy.TWO_STAGE))

    assert outcome.state == ControllerState.COMPLETED
    assert "Assembled" in outcome.html
    placeholders = [result for result in outcome.stage_results if result.placeholder]
    assert [result.stage.name for result in placeholders] == ["component_generation:pricing"]
    assembly_prompt = provider.calls[-1][-1]["content"]
    assert "<section>Hero</section>" in assembly_prompt
    assert 'data-component="pricing"' in assembly_prompt


def test_component_specs_defaults_and_dedupes() -> None:
    assert component_specs("not json") == [{"name": "global", "purpose": "shared layout, navigation and styles"}]
    specs = component_specs('{"components": ["Nav", "nav", {"name": "Footer", "description": "links"}]}')
    assert specs == [{"name": "Nav", "purpose": ""}, {"name": "Footer", "purpose": "links"}]


def test_modification_uses_current_html(scripted_provider, test_settings) -> None:
    provider = scripted_provider(_doc("Blue"))
    controller, _ = _controller(provider, test_settings)
    request = GenerationRequest(
        prompt="make the heading blue",
        is_modification=True,
        current_html=_doc("Red"),
        page_id="page-1",
    )

    outcome = _run(controller, request)

    assert outcome.state == ControllerState.COMPLETED
    assert len(provider.calls) == 1
    assert "<h1>Red</h1>" in provider.calls[0][0]["content"]
    assert outcome.pages[0].page_id == "page-1"


def test_cancellation_registry() -> None:
    CancellationRegistry.reset_instance()
    registry = CancellationRegistry.get_instance()
    token = registry.register("abc")
    assert registry.register("abc") is token
    assert registry.active_ids() == ["abc"]
    assert registry.cancel("abc", reason="stop") is True
    assert token.cancelled and token.reason == "stop"
    registry.unregister("abc")
    assert registry.cancel("abc") is False
    CancellationRegistry.reset_instance()


def test_runner_saves_pages_off_the_event_loop(scripted_provider, test_settings, database, monkeypatch) -> None:
    save_threads = []
    original_save = ProjectService.save_generation

    def recording_save(self, **kwargs):
        save_threads.append(threading.get_ident())
        return original_save(self, **kwargs)

    monkeypatch.setattr(ProjectService, "save_generation", recording_save)
    provider = scripted_provider(_doc("Home"), _doc("About"))
    emitter = StreamEmitter(request_id="req", keepalive_interval=0)
    runner = GenerationRunner(provider, emitter, settings=test_settings, database=database, auto_save=True)
    request = GenerationRequest(prompt="p", strategy=GenerationStrategy.MULTI, page_names=["index", "about"])

    outcome = asyncio.run(runner.run(request))

    assert outcome.state == ControllerState.COMPLETED
    assert len(save_threads) == 2
    assert threading.get_ident() not in save_threads
    assert all(page.page_id for page in outcome.pages)
    saved = [event for event in _frames(emitter) if event["type"] == "page_saved"]
    assert [event["page_name"] for event in saved] == ["index", "about"]
    assert emitter.close_reason == "completed"
