import pytest

from app.exceptions import InvalidResponseError
from app.schemas import AnalysisResult, Passage, WordAlignment
from app.utils.json_utils import parse_provider_json, parse_provider_model, strip_code_fences


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('{"a": 1}') == '{"a": 1}'


def test_parse_provider_json_tolerates_fences():
    assert parse_provider_json('```json\n{"topic": "x"}\n```') == {"topic": "x"}


@pytest.mark.parametrize("text", ["", "   ", None, "not json", '{"topic": '])
def test_invalid_json_raises_invalid_response(text):
    with pytest.raises(InvalidResponseError) as exc_info:
        parse_provider_json(text, provider="gemini")
    assert exc_info.value.provider == "gemini"


def test_model_mismatch_raises_invalid_response():
    with pytest.raises(InvalidResponseError):
        parse_provider_model('{"topic": "only a topic"}', Passage, provider="openai")


def test_passage_fields_are_stripped_and_required():
    passage = parse_provider_model('{"topic": "  Commute ", "text": " One. Two. Three. "}', Passage)
    assert passage.topic == "Commute"
    assert passage.text == "One. Two. Three."

    with pytest.raises(InvalidResponseError):
        parse_provider_model('{"topic": "x", "text": "   "}', Passage)


def test_word_alignment_accepts_wire_names():
    word = WordAlignment.model_validate(
        {"word": "coffee", "status": "Good", "refStartTime": 0.5, "refEndTime": "1.2",
         "userStartTime": 0.8, "userEndTime": 1.6}
    )
    assert word.status == "good"
    assert word.ref_end == pytest.approx(1.2)
    assert word.has_timestamps


@pytest.mark.parametrize("bad", [None, "soon", -1, True, float("nan")])
def test_unusable_timestamps_become_missing(bad):
    word = WordAlignment.model_validate(
        {"word": "news", "status": "poor", "refStartTime": bad, "refEndTime": 1.0,
         "userStartTime": 0.2, "userEndTime": 0.9}
    )
    assert word.ref_start is None
    assert not word.has_timestamps


def test_unknown_status_is_rejected():
    with pytest.raises(InvalidResponseError):
        parse_provider_model('{"score": 50, "words": [{"word": "a", "status": "great"}]}', AnalysisResult)


def test_analysis_score_is_clamped_and_order_kept():
    result = parse_provider_model(
        '{"score": 130, "words": [{"word": "b", "status": "good"}, {"word": "a", "status": "average"}],'
        ' "pronunciation": {"strengths": ["clear vowels"]}}',
        AnalysisResult,
    )
    assert result.score == 100
    assert [w.word for w in result.words] == ["b", "a"]
    assert result.pronunciation.strengths == ["clear vowels"]
    assert result.pronunciation.weaknesses == []


@pytest.mark.parametrize("raw, expected", [("\"150\"", 100), ("\"-5\"", 0), ("\"72.5\"", 72.5), ("-20", 0)])
def test_analysis_score_clamp_covers_numbers_and_numeric_strings(raw, expected):
    result = parse_provider_model(
        '{"score": ' + raw + ', "words": [{"word": "a", "status": "good"}]}', AnalysisResult,
    )
    assert result.score == expected


def test_analysis_non_numeric_score_is_rejected():
    with pytest.raises(InvalidResponseError):
        parse_provider_model('{"score": "great", "words": []}', AnalysisResult)


def test_analysis_serializes_camel_case_timestamps():
    result = AnalysisResult.model_validate(
        {"score": 80, "words": [{"word": "a", "status": "good", "refStartTime": 0.1}]}
    )
    dumped = result.model_dump(by_alias=True)
    assert dumped["words"][0]["refStartTime"] == pytest.approx(0.1)
    assert dumped["words"][0]["userEndTime"] is None
