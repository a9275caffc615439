import httpx
import pytest
from agents.extraction_agent import ExtractionAgent, parse_json_object
from consolidation.vocabulary import AgeBracket, CharacterRole
from core.exceptions import EmptyResponseError, ResponseParseError
from fakes import FakeLLM, char, payload, http_error
from models.entity_models import Character, Weapon
from models.run_models import EntityBundle


def test_parse_json_object_recovers_wrapped_object():
    assert parse_json_object('Sure! {"characters": []} Hope this helps') == {
        "characters": []
    }


@pytest.mark.parametrize("raw", ["", "   ", None])
def test_parse_json_object_empty(raw):
    with pytest.raises(EmptyResponseError):
        parse_json_object(raw)


@pytest.mark.parametrize("raw", ["no json here", "[1, 2]", "{broken"])
def test_parse_json_object_rejects_garbage(raw):
    with pytest.raises(ResponseParseError) as info:
        parse_json_object(raw)
    assert info.value.raw_text == raw


def test_base_prompt_override_and_default():
    agent = ExtractionAgent(model_name="m", llm=FakeLLM([]))
    assert agent.build_base_prompt("Custom rules") == "Custom rules"
    default = agent.build_base_prompt("   ")
    assert "groupName" in default
    assert "15-25" in default


def test_compose_prompt_includes_context_only_when_present():
    with_context = ExtractionAgent.compose_extraction_prompt("BASE", "[KNOWN]", "chunk")
    assert with_context == "BASE\n\n[KNOWN]\n\nText excerpt:\nchunk"
    assert ExtractionAgent.compose_extraction_prompt("BASE", "", "chunk") == (
        "BASE\n\nText excerpt:\nchunk"
    )


@pytest.mark.asyncio
async def test_extract_coerces_loose_payload():
    raw = payload(
        [
            char(
                "阿阿",
                age="二十五岁",
                role="主角",
                weapons=["黑蛇匕首"],
                clothingStyles="大婚",
                aliases="阿A",
            )
        ],
        [{"groupName": "Palace", "name": "Hall", "structure": "外景", "frequency": "2"}],
    )
    llm = FakeLLM([raw])
    agent = ExtractionAgent(model_name="m", llm=llm)

    response = await agent.extract("BASE", "", "text")

    character = response.payload.characters[0]
    assert character.age == AgeBracket.YOUTH
    assert character.role == CharacterRole.PRIMARY
    assert character.weapons[0].name == "黑蛇匕首"
    assert character.clothing_styles[0].phase == "大婚"
    assert character.aliases == ["阿A"]
    assert response.payload.scenes[0].frequency == 2
    assert response.raw_text == raw
    call = llm.calls[0]
    assert call["model_name"] == "m"
    assert call["schema_name"] == "visual_bible_extraction"
    assert "characters" in call["response_schema"]["properties"]
    assert agent.usage.requests == 1
    assert agent.usage.total_tokens == 10


@pytest.mark.asyncio
async def test_extract_tolerates_wrong_shapes():
    agent = ExtractionAgent(model_name="m", llm=FakeLLM(['{"characters": "oops"}']))
    response = await agent.extract("BASE", "", "text")
    assert response.payload.characters == []

    agent = ExtractionAgent(model_name="m", llm=FakeLLM(['{"scenes": [{"frequency": -4}]}']))
    response = await agent.extract("BASE", "", "text")
    assert response.payload.scenes[0].frequency == 1


@pytest.mark.asyncio
async def test_extract_propagates_service_errors_and_counts_request():
    agent = ExtractionAgent(model_name="m", llm=FakeLLM([http_error(400)]))
    with pytest.raises(httpx.HTTPStatusError):
        await agent.extract("BASE", "", "text")
    assert agent.usage.requests == 1


@pytest.mark.asyncio
async def test_enrich_sends_entities_and_custom_instructions():
    llm = FakeLLM([payload()])
    agent = ExtractionAgent(model_name="m", llm=llm)
    bundle = EntityBundle(characters=[Character(id="c1", group_name="阿阿", name="阿阿")])

    await agent.enrich(bundle, "Only improve clothing.")

    prompt = llm.prompts[0]
    assert prompt.startswith("Only improve clothing.")
    assert "TASK: Enrich" not in prompt
    assert '"groupName": "阿阿"' in prompt
    assert llm.calls[0]["schema_name"] == "visual_bible_enrichment"


@pytest.mark.asyncio
async def test_smart_merge_uses_merge_model():
    llm = FakeLLM(['{"groupName": "A", "name": "A", "weapons": [{"name": "Bow"}]}'])
    agent = ExtractionAgent(model_name="m", llm=llm, merge_model_name="merge-m")
    existing = Character(group_name="A", name="A", weapons=[Weapon(name="Bow")])

    merged = await agent.smart_merge(existing, Character(group_name="A", name="A"))

    assert merged.weapons[0].name == "Bow"
    assert llm.calls[0]["model_name"] == "merge-m"
    assert llm.calls[0]["schema_name"] == "character"
    assert "EXISTING" in llm.prompts[0]


@pytest.mark.asyncio
async def test_extract_unparseable_answer_keeps_raw_text():
    agent = ExtractionAgent(model_name="m", llm=FakeLLM(["I could not find anyone."]))
    with pytest.raises(ResponseParseError) as info:
        await agent.extract("BASE", "", "text")
    assert info.value.raw_text == "I could not find anyone."
