import asyncio

from sitebuilder.planner import (
    GenerationPlanner,
    GenerationStrategy,
    StageKind,
    build_plan,
    default_plan,
    normalize_page_name,
    normalize_planned_pages,
    parse_strategy,
)


def test_parse_strategy_aliases() -> None:
    assert parse_strategy("multi-page") == GenerationStrategy.MULTI
    assert parse_strategy("Long Form") == GenerationStrategy.LONG
    assert parse_strategy("two_stage") == GenerationStrategy.TWO_STAGE
    assert parse_strategy("unknown") is None
    assert parse_strategy(None) is None


def test_normalize_page_name() -> None:
    assert normalize_page_name("About Us.html") == "About-Us"
    assert normalize_page_name("/pages/contact.htm") == "contact"
    assert normalize_page_name("  faq!? ") == "faq"
    assert normalize_page_name(None) == ""


def test_first_page_is_pinned_to_index() -> None:
    pages, warnings = normalize_planned_pages(["home", "about", "contact"])
    assert [page.page_name for page in pages] == ["index", "about", "contact"]
    assert pages[0].is_main_page and not pages[1].is_main_page
    assert pages[0].title == "Home"
    assert any("pinned" in warning for warning in warnings)


def test_case_insensitive_duplicates_are_dropped() -> None:
    pages, warnings = normalize_planned_pages(
        ["index", {"name": "About", "title": "About us"}, "about", {"slug": "INDEX"}, ""]
    )
    assert [page.page_name for page in pages] == ["index", "About"]
    assert pages[1].title == "About us"
    assert sum("duplicate" in warning for warning in warnings) == 2
    assert any("no usable name" in warning for warning in warnings)


def test_empty_page_list_defaults_to_index() -> None:
    pages, _ = normalize_planned_pages([])
    assert [page.page_name for page in pages] == ["index"]


def test_build_plan_multi_page_stages() -> None:
    plan = build_plan(
        {"title": "Bakery", "pages": ["index", "menu", "contact"]},
        "A bakery website",
        strategy=GenerationStrategy.MULTI,
    )
    assert plan.planned_pages == ["index", "menu", "contact"]
    assert [stage.kind for stage in plan.stages] == [StageKind.PAGE] * 3
    assert [stage.page_name for stage in plan.stages] == ["index", "menu", "contact"]
    assert plan.stages[0].is_main_page
    assert plan.summary()["planned_pages"] == ["index", "menu", "contact"]


def test_build_plan_pads_to_total_pages() -> None:
    plan = build_plan({}, "site", strategy=GenerationStrategy.MULTI, page_names=["index", "about"], total_pages=4)
    assert plan.planned_pages == ["index", "about", "page-3", "page-4"]


def test_single_page_strategies_keep_one_page() -> None:
    plan = build_plan({"pages": ["index", "about"], "sections": ["hero", "features"]}, "p", strategy=GenerationStrategy.LONG)
    assert plan.planned_pages == ["index"]
    assert [stage.kind for stage in plan.stages] == [StageKind.SECTION, StageKind.SECTION]
    assert plan.stages[1].section_index == 1 and plan.stages[1].total_sections == 2


def test_long_form_defaults_sections() -> None:
    plan = build_plan({}, "p", strategy=GenerationStrategy.LONG)
    assert len(plan.stages) == 4


def test_two_stage_plan_is_stored_as_single() -> None:
    plan = build_plan({}, "p", strategy=GenerationStrategy.TWO_STAGE)
    assert [stage.kind for stage in plan.stages] == [
        StageKind.NEEDS_ANALYSIS,
        StageKind.ARCHITECTURE,
        StageKind.COMPONENT_GENERATION,
        StageKind.ASSEMBLY,
    ]
    assert plan.stages[0].max_tokens == 1500
    assert plan.stages[-1].max_tokens is None
    assert plan.generation_type == "single"


def test_default_plan_is_single_fallback() -> None:
    plan = default_plan("make a site", "bad json")
    assert plan.strategy == GenerationStrategy.SINGLE
    assert plan.fallback
    assert "bad json" in plan.warnings
    assert plan.planned_pages == ["index"]


def test_planner_skips_call_when_hints_suffice(scripted_provider) -> None:
    planner = GenerationPlanner(scripted_provider())
    assert planner.needs_planning_call(None, None)
    assert planner.needs_planning_call(GenerationStrategy.MULTI, [])
    assert not planner.needs_planning_call(GenerationStrategy.MULTI, ["index", "about"])
    assert not planner.needs_planning_call(GenerationStrategy.SINGLE, None)


def test_planner_parses_model_output(scripted_provider) -> None:
    provider = scripted_provider(
        'Plan:\n```json\n{"strategy": "multi", "title": "Studio", "pages": ["home", "work", "contact"]}\n```'
    )
    planner = GenerationPlanner(provider)
    raw = asyncio.run(planner.request_plan_text("A design studio site"))
    plan = planner.plan_from_text(raw, "A design studio site")

    assert plan.strategy == GenerationStrategy.MULTI
    assert plan.title == "Studio"
    assert plan.planned_pages == ["index", "work", "contact"]
    assert len(provider.calls) == 1
    assert provider.calls[0][0]["role"] == "system"


def test_planner_falls_back_on_unparseable_output(scripted_provider) -> None:
    planner = GenerationPlanner(scripted_provider())
    plan = planner.plan_from_text("I think you should build a nice site.", "A site")
    assert plan.fallback
    assert plan.strategy == GenerationStrategy.SINGLE
    assert plan.planned_pages == ["index"]


def test_planner_reads_bare_array_as_pages(scripted_provider) -> None:
    planner = GenerationPlanner(scripted_provider())
    plan = planner.plan_from_text('["index", "about"]', "A site")
    assert plan.strategy == GenerationStrategy.MULTI
    assert plan.planned_pages == ["index", "about"]
