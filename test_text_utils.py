from deepsearch.core.llm.text_utils import MIN_CHUNK_SIZE, _cut_at_boundary, parse_json_response, trim_prompt


def test_parse_plain_and_fenced_json():
    assert parse_json_response('{"score": 0.7}') == {"score": 0.7}
    assert parse_json_response('```json\n{"score": 0.7}\n```') == {"score": 0.7}


def test_parse_json_embedded_in_prose():
    reply = 'Sure! Here is the result: {"queries": [{"query": "a"}]} Hope that helps.'
    assert parse_json_response(reply) == {"queries": [{"query": "a"}]}


def test_unparseable_reply_is_none():
    assert parse_json_response("") is None
    assert parse_json_response("no json here") is None


def test_short_prompt_is_returned_unchanged():
    text = "A short prompt.\n\nWith two paragraphs."
    assert trim_prompt(text, 1000) == text
    assert trim_prompt("", 10) == ""


def test_cut_prefers_paragraph_boundaries():
    first = "x" * (MIN_CHUNK_SIZE + 10)
    text = f"{first}\n\nsecond paragraph that will not fit"

    assert _cut_at_boundary(text, len(first) + 8) == first


def test_cut_keeps_sentence_period():
    first = "y" * (MIN_CHUNK_SIZE + 5) + "."
    text = f"{first} Next sentence runs on"

    assert _cut_at_boundary(text, len(first) + 6) == first
