import json

import pytest

from salesdesk.core.content import (
    RenderedContent, StructuredContent, parse_proposal_content, serialize_proposal_content
)


def test_structured_payload():
    content = parse_proposal_content(json.dumps({"clientEmail": " Ada@Example.COM ", "validityDays": "10"}))
    assert type(content) is StructuredContent
    assert content.client_email == "ada@example.com"
    assert content.validity_days == 10


def test_edited_html_payload():
    content = parse_proposal_content({"editedHtmlContent": "<p>Quote</p>", "terms": {"validityDays": 21}})
    assert isinstance(content, RenderedContent)
    assert content.html == "<p>Quote</p>"
    assert content.validity_days == 21


def test_blank_html_is_structured():
    assert type(parse_proposal_content({"editedHtmlContent": "  "})) is StructuredContent


@pytest.mark.parametrize("raw", [None, "", json.dumps({"validityDays": 0}), json.dumps({"validityDays": "soon"})])
def test_missing_or_bad_validity(raw):
    assert parse_proposal_content(raw).validity_days is None


def test_non_object_payload_is_rejected():
    with pytest.raises(ValueError):
        parse_proposal_content("[1, 2]")
    with pytest.raises(ValueError):
        serialize_proposal_content("[1, 2]")


def test_serialize_keeps_fields():
    content = parse_proposal_content({"clientName": "Ada"})
    assert json.loads(serialize_proposal_content(content)) == {"clientName": "Ada"}
