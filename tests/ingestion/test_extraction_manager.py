# tests/ingestion/test_extraction_manager.py

import asyncio

import httpx
import ingestion.extraction_manager as extraction_manager
import pytest
from agents.extraction_agent import ExtractionAgent
from core.exceptions import ExtractionRunError
from core.llm_interface import LLMService
from core.retry import RetryPolicy
from fakes import FakeLLM, char, http_error, payload
from ingestion.extraction_manager import ExtractionManager
from models.entity_models import Character
from models.run_models import EntityBundle, RunState, RunStatus

DETAILED = {
    "description": "A quiet archer who guards the northern pass.",
    "visualMemoryPoints": "Pale face, dark eyes, hair tied with a green colour ribbon.",
}


@pytest.fixture(autouse=True)
def paused(monkeypatch):
    waits: list[float] = []

    async def fake_pause(seconds: float) -> None:
        waits.append(seconds)

    monkeypatch.setattr(extraction_manager, "_pause", fake_pause)
    return waits


def _manager(responses, on_call=None, **kwargs):
    llm = FakeLLM(responses, on_call=on_call)
    agent = ExtractionAgent(model_name="m", llm=llm, merge_model_name="merge-m")
    kwargs.setdefault("chunk_size", 5)
    kwargs.setdefault("merge_strategy", "deterministic")
    kwargs.setdefault("enable_enrichment", False)
    kwargs.setdefault("skip_failed_chunks", True)
    return ExtractionManager(agent, **kwargs), llm


@pytest.mark.asyncio
async def test_identity_variants_consolidate_across_chunks():
    manager, llm = _manager(
        [
            payload(
                [
                    char(
                        "A",
                        "Ah-A",
                        description="short",
                        weapons=[{"name": "Blade", "description": "steel"}],
                    )
                ]
            ),
            payload(
                [
                    char(
                        "a",
                        "aha",
                        description="a much longer description",
                        weapons=[{"name": "Short Blade", "description": "blue steel edge"}],
                    )
                ],
                [{"groupName": "Inn", "name": "Hall"}],
            ),
        ]
    )

    result = await manager.run_extraction("0123456789", pace_ms=0)

    assert result.status == RunStatus.COMPLETED
    assert len(result.characters) == 1
    alice = result.characters[0]
    assert (alice.group_name, alice.name) == ("A", "Ah-A")
    assert alice.description == "a much longer description"
    assert [(w.name, w.description) for w in alice.weapons] == [
        ("Short Blade", "blue steel edge")
    ]
    assert [s.name for s in result.scenes] == ["Hall"]
    assert "Character[A_Ah-A]" in llm.prompts[1]
    assert "[KNOWN ENTITIES]" not in llm.prompts[0]
    assert llm.prompts[0].endswith("Text excerpt:\n01234")
    assert [entry.chunk_index for entry in result.debug_log] == [0, 1]
    assert result.debug_log[0].used_prompt is not None
    assert result.debug_log[1].used_prompt is None
    assert result.debug_log[1].parsed_data["characters"][0]["groupName"] == "a"
    assert result.usage.requests == 2
    assert manager.state == RunState.DONE


@pytest.mark.asyncio
async def test_prompt_override_replaces_default():
    manager, llm = _manager([payload()])
    await manager.run_extraction("abc", prompt_override="MY RULES", pace_ms=0)
    assert llm.prompts[0].startswith("MY RULES")
    assert "TASK: Build a visual bible" not in llm.prompts[0]


@pytest.mark.asyncio
async def test_ai_assisted_merge_is_reconciled():
    first = payload([char("A", weapons=[{"name": "Longbow", "description": "yew"}])])
    second = payload([char("A", aliases=["Archer"])])
    ai_answer = '{"groupName": "Someone", "name": "Else", "description": "merged text"}'
    manager, llm = _manager([first, second, ai_answer], merge_strategy="ai_assisted")

    result = await manager.run_extraction("0123456789", pace_ms=0)

    merged = result.characters[0]
    assert (merged.group_name, merged.name) == ("A", "A")
    assert merged.description == "merged text"
    assert merged.aliases == ["Archer"]
    assert [w.name for w in merged.weapons] == ["Longbow"]
    assert llm.calls[2]["model_name"] == "merge-m"
    assert llm.calls[2]["schema_name"] == "character"


@pytest.mark.asyncio
async def test_ai_merge_failure_falls_back_to_deterministic():
    first = payload([char("A", description="short")])
    second = payload([char("A", description="considerably longer")])
    manager, _ = _manager(
        [first, second, http_error(400, "bad schema")], merge_strategy="ai_assisted"
    )

    result = await manager.run_extraction("0123456789", pace_ms=0)

    assert result.status == RunStatus.COMPLETED
    assert result.characters[0].description == "considerably longer"


@pytest.mark.asyncio
async def test_cancel_stops_before_next_chunk():
    cancel = asyncio.Event()

    def on_call(count, _kwargs):
        if count == 2:
            cancel.set()

    manager, llm = _manager(
        [payload([char("A")]), payload([char("B")])],
        on_call=on_call,
        enable_enrichment=True,
    )

    result = await manager.run_extraction("x" * 25, pace_ms=0, cancel_event=cancel)

    assert result.status == RunStatus.CANCELLED
    assert len(llm.calls) == 2
    assert [c.group_name for c in result.characters] == ["A", "B"]
    assert not result.enriched
    assert manager.state == RunState.CANCELLED


@pytest.mark.asyncio
async def test_cancel_after_last_chunk_is_reported():
    cancel = asyncio.Event()
    manager, _ = _manager([payload([char("A")])], on_call=lambda *_: cancel.set())
    result = await manager.run_extraction("abc", pace_ms=0, cancel_event=cancel)
    assert result.status == RunStatus.CANCELLED
    assert len(result.characters) == 1


@pytest.mark.asyncio
async def test_unparseable_and_empty_chunks_are_skipped():
    manager, _ = _manager(["not json at all", "", payload([char("C")])])

    result = await manager.run_extraction("x" * 15, pace_ms=0)

    assert [c.group_name for c in result.characters] == ["C"]
    errors = [entry.error for entry in result.debug_log]
    assert errors[0].startswith("JSON parse failed")
    assert errors[1] == "Empty response"
    assert errors[2] is None
    assert result.debug_log[0].raw_response == "not json at all"
    assert result.debug_log[0].used_prompt is not None


@pytest.mark.asyncio
async def test_service_error_skipped_when_enabled():
    manager, _ = _manager([http_error(503), payload([char("B")])])
    result = await manager.run_extraction("x" * 10, pace_ms=0)
    assert [c.group_name for c in result.characters] == ["B"]
    assert "503" in result.debug_log[0].error


@pytest.mark.asyncio
async def test_service_error_raises_with_partial_result_in_strict_mode():
    manager, llm = _manager(
        [payload([char("A")]), http_error(503), payload([char("C")])],
        skip_failed_chunks=False,
    )

    with pytest.raises(ExtractionRunError) as info:
        await manager.run_extraction("x" * 15, pace_ms=0)

    partial = info.value.partial
    assert partial.status == RunStatus.FAILED
    assert [c.group_name for c in partial.characters] == ["A"]
    assert len(partial.debug_log) == 2
    assert partial.debug_log[1].error is not None
    assert len(llm.calls) == 2
    assert manager.state == RunState.ERRORED


@pytest.mark.asyncio
async def test_empty_outcome_is_reported():
    progress: list[tuple[int, str]] = []
    manager, _ = _manager([payload()], enable_enrichment=True)

    result = await manager.run_extraction(
        "abc", pace_ms=0, on_progress=lambda p, s: progress.append((p, s))
    )

    assert result.status == RunStatus.EMPTY
    assert result.is_empty
    assert progress[-1] == (100, "Analysis complete, but no entities were extracted")


@pytest.mark.asyncio
async def test_empty_text_runs_no_chunks():
    manager, llm = _manager([])
    result = await manager.run_extraction("", pace_ms=0)
    assert result.status == RunStatus.EMPTY
    assert llm.calls == []


@pytest.mark.asyncio
async def test_progress_reports():
    progress: list[tuple[int, str]] = []
    manager, _ = _manager([payload([char("A")]), payload()])

    await manager.run_extraction(
        "0123456789", pace_ms=0, on_progress=lambda p, s: progress.append((p, s))
    )

    assert progress == [
        (0, "Processing chunk 1/2"),
        (50, "Processing chunk 2/2"),
        (100, "Analysis complete"),
    ]


@pytest.mark.asyncio
async def test_pacing_waits_between_chunks(paused):
    manager, _ = _manager([payload(), payload()])
    await manager.run_extraction("0123456789", pace_ms=1000)
    assert len(paused) == 2
    assert all(0 < wait <= 1.0 for wait in paused)


@pytest.mark.asyncio
async def test_enrichment_fills_thin_fields():
    progress: list[tuple[int, str]] = []
    enriched_text = "A tall archer in a green colour cloak with a steady gaze."
    manager, llm = _manager(
        [
            payload([char("A", description="short")]),
            payload([char("A", description=enriched_text, age="about thirty")]),
        ],
        enable_enrichment=True,
    )

    result = await manager.run_extraction(
        "abc", pace_ms=0, on_progress=lambda p, s: progress.append((p, s))
    )

    assert result.enriched
    assert result.characters[0].description == enriched_text
    assert result.characters[0].age.value == "26-40"
    assert llm.calls[1]["schema_name"] == "visual_bible_enrichment"
    assert (95, "Enriching entity details...") in progress
    assert progress[-1] == (100, "Analysis complete")


@pytest.mark.asyncio
async def test_enrichment_skipped_when_everything_is_detailed():
    manager, llm = _manager([payload([char("A", **DETAILED)])], enable_enrichment=True)
    result = await manager.run_extraction("abc", pace_ms=0)
    assert not result.enriched
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_enrichment_failure_keeps_extracted_results():
    manager, _ = _manager(
        [payload([char("A", description="short")]), http_error(500)],
        enable_enrichment=True,
    )
    result = await manager.run_extraction("abc", pace_ms=0)
    assert result.status == RunStatus.COMPLETED
    assert not result.enriched
    assert result.characters[0].description == "short"
    assert manager.state == RunState.DONE


@pytest.mark.asyncio
async def test_run_enrichment_propagates_errors():
    manager, _ = _manager([http_error(500)])
    with pytest.raises(httpx.HTTPStatusError):
        await manager.run_enrichment([Character(group_name="A", name="A")], [])
    assert manager.state == RunState.ERRORED


@pytest.mark.asyncio
async def test_run_enrichment_with_custom_prompt():
    manager, llm = _manager(
        [payload([char("A", description="A tall archer in a green colour cloak.")])]
    )
    bundle = await manager.run_enrichment(
        [Character(id="c1", group_name="A", name="A")],
        [],
        prompt_override="Focus on cloaks.",
    )
    assert bundle.characters[0].id == "c1"
    assert bundle.characters[0].description == "A tall archer in a green colour cloak."
    assert llm.prompts[0].startswith("Focus on cloaks.")
    assert manager.state == RunState.DONE


@pytest.mark.asyncio
async def test_seeded_run_keeps_ids_and_ignores_service_ids():
    seed = EntityBundle(characters=[Character(id="seed1", group_name="A", name="A")])
    manager, llm = _manager([payload([char("A", id="bogus"), char("B", id="bogus")])])

    result = await manager.run_extraction("abc", pace_ms=0, seed=seed)

    ids = {c.group_name: c.id for c in result.characters}
    assert ids["A"] == "seed1"
    assert ids["B"] not in ("", "bogus")
    assert "Character[A_A]" in llm.prompts[0]


@pytest.mark.asyncio
async def test_blade_variants_merge_into_one_character():
    manager, _ = _manager(
        [
            payload(
                [
                    char(
                        "A",
                        "A",
                        aliases=["Ah-A"],
                        weapons=[{"name": "Blade", "description": "a short blade"}],
                    )
                ]
            ),
            payload(
                [
                    char(
                        "A",
                        "A",
                        weapons=[
                            {
                                "name": "Short Blade",
                                "description": "a short, slightly curved blade, steel, grey",
                            }
                        ],
                    )
                ]
            ),
        ]
    )

    result = await manager.run_extraction("0123456789", pace_ms=0)

    assert [c.registry_key for c in result.characters] == ["a_a"]
    character = result.characters[0]
    assert character.aliases == ["Ah-A"]
    assert [w.description for w in character.weapons] == [
        "a short, slightly curved blade, steel, grey"
    ]


def _http_manager(handler, **kwargs):
    async def no_sleep(_delay: float) -> None:
        return None

    policy = RetryPolicy(max_attempts=2, base_delay=0.0, max_jitter=0.0, sleep=no_sleep)
    llm = LLMService(retry_policy=policy, transport=httpx.MockTransport(handler))
    agent = ExtractionAgent(model_name="m", llm=llm)
    kwargs.setdefault("chunk_size", 5)
    kwargs.setdefault("merge_strategy", "deterministic")
    kwargs.setdefault("skip_failed_chunks", True)
    return ExtractionManager(agent, **kwargs), llm


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.mark.asyncio
async def test_non_json_service_body_skips_chunk():
    manager, llm = _http_manager(
        lambda _r: httpx.Response(200, text="<html>gateway hiccup</html>"),
        enable_enrichment=False,
    )

    result = await manager.run_extraction("0123456789", pace_ms=0)
    await llm.aclose()

    assert result.status == RunStatus.EMPTY
    assert [entry.chunk_index for entry in result.debug_log] == [0, 1]
    assert result.debug_log[0].raw_response == "<html>gateway hiccup</html>"
    assert "non-JSON" in result.debug_log[0].error
    assert manager.state == RunState.DONE


@pytest.mark.asyncio
async def test_non_json_enrichment_body_keeps_extracted_results():
    responses = [
        _completion(payload([char("A", description="short")])),
        httpx.Response(200, text="upstream error page"),
    ]
    manager, llm = _http_manager(
        lambda _r: responses.pop(0), chunk_size=100, enable_enrichment=True
    )

    result = await manager.run_extraction("abc", pace_ms=0)
    await llm.aclose()

    assert result.status == RunStatus.COMPLETED
    assert not result.enriched
    assert [c.group_name for c in result.characters] == ["A"]
    assert result.characters[0].description == "short"
