from sitebuilder.planner.extractor import (
    BRACE_SCAN,
    FENCED,
    GREEDY_ARRAY,
    extract_structured,
    scan_balanced_objects,
)


def test_fenced_block_wins() -> None:
    text = 'Here is the plan:\n```json\n{"strategy": "multi", "pages": ["index", "about"]}\n```\nThanks!'
    result = extract_structured(text)
    assert result.ok
    assert result.strategy == FENCED
    assert result.value["pages"] == ["index", "about"]


def test_brace_scan_ignores_braces_inside_strings() -> None:
    text = 'Sure. {"title": "Use {curly} braces", "pages": ["index"]} and {not json}'
    result = extract_structured(text)
    assert result.ok
    assert result.strategy == BRACE_SCAN
    assert result.value["title"] == "Use {curly} braces"


def test_greedy_array_fallback() -> None:
    result = extract_structured('Pages: ["index", "about", "contact"] done')
    assert result.ok
    assert result.strategy == GREEDY_ARRAY
    assert result.value == ["index", "about", "contact"]


def test_invalid_inputs_fail_without_raising() -> None:
    assert not extract_structured(None).ok
    assert not extract_structured("   ").ok
    failed = extract_structured("no json at all")
    assert not failed.ok
    assert failed.error == "no parseable JSON found"


def test_scan_balanced_objects_handles_escaped_quotes() -> None:
    spans = scan_balanced_objects('{"a": "say \\"}\\""} tail {"b": 2}')
    assert spans == ['{"a": "say \\"}\\""}', '{"b": 2}']