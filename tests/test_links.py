"""Tests for Link header parsing."""
import pytest

from syncline.ingestion.links import next_link, parse_link_header


def test_parse_link_header():
    header = '<https://api.test/items?page=2>; rel="next", <https://api.test/items?page=5>; rel="last"'
    assert parse_link_header(header) == [
        ("https://api.test/items?page=2", {"rel": "next"}),
        ("https://api.test/items?page=5", {"rel": "last"}),
    ]


def test_next_link_absent():
    assert next_link('<https://api.test/items?page=1>; rel="prev"') is None
    assert next_link(None) is None


def test_next_link_across_multiple_headers():
    headers = ['<https://api.test/a>; rel="last"', '<https://api.test/b>; rel="next"']
    assert next_link(headers) == "https://api.test/b"


def test_multiple_next_links_are_ambiguous():
    headers = ['<https://api.test/a>; rel="next"', '<https://api.test/b>; rel="next"']
    with pytest.raises(ValueError):
        next_link(headers)


@pytest.mark.parametrize("header", [
    "https://api.test/a; rel=next",
    "<https://api.test/a>",
    "<https://api.test/a>; rel",
])
def test_malformed_header_raises(header):
    with pytest.raises(ValueError):
        parse_link_header(header)
