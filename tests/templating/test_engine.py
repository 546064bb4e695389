"""Tests for httpbridge.templating.engine."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from httpbridge.core.errors import InvalidHeaderError
from httpbridge.core.records import MappingRecord
from httpbridge.templating.clock import PollingClock, TimeTokenResolver
from httpbridge.templating.engine import (
    HeaderTemplate,
    Literal,
    Placeholder,
    RenderContext,
    Template,
    parse_header_specs,
    parse_header_templates,
    render,
    render_header,
    render_headers,
    stringify,
)


# ── Helpers ──────────────────────────────────────────────────────────────


@pytest.fixture()
def context(record, seconds_tokens):
    return RenderContext(record, seconds_tokens)


# ── Parsing ──────────────────────────────────────────────────────────────


class TestTemplateParse:
    def test_segments(self):
        template = Template.parse("http://host/{id}?q={name}")
        assert template.segments == (
            Literal("http://host/"),
            Placeholder("id"),
            Literal("?q="),
            Placeholder("name"),
        )
        assert template.placeholders == ("id", "name")

    def test_unbalanced_braces_are_literal(self):
        template = Template.parse("a{b")
        assert template.segments == (Literal("a{b"),)

    def test_empty_placeholder(self):
        assert Template.parse("{}").placeholders == ("",)


# ── Rendering ────────────────────────────────────────────────────────────


class TestRender:
    def test_scenario_url_with_field_and_last_polling(self, seconds_tokens):
        record = MappingRecord.from_dict({"id": "42"})
        url = render("http://host/{id}?since={$lastPollingDateTime}", record, seconds_tokens)
        assert url == "http://host/42?since=1000"

    @pytest.mark.parametrize("text", ["", "plain text", "http://host/path?a=1&b=2", "a}b{c"])
    def test_no_placeholders_unchanged(self, text, record, seconds_tokens):
        assert render(text, record, seconds_tokens) == text

    def test_field_substituted_in_place(self, record, seconds_tokens):
        assert render("<{name}>", record, seconds_tokens) == "<alpha>"

    def test_declared_field_without_value_is_empty(self, seconds_tokens):
        record = MappingRecord.from_dict({}, field_names=["id"])
        assert render("x={id};", record, seconds_tokens) == "x=;"

    def test_empty_placeholder_renders_empty(self, record, seconds_tokens):
        assert render("a{}b", record, seconds_tokens) == "ab"

    def test_unknown_placeholder_passes_through(self, record, seconds_tokens):
        assert render('{"q": {missing}}', record, seconds_tokens) == '{"q": {missing}}'

    def test_field_wins_over_token_name(self, seconds_tokens):
        record = MappingRecord.from_dict({"$currentDateTime": "field"})
        assert render("{$currentDateTime}", record, seconds_tokens) == "field"

    def test_current_datetime_uses_now(self, record, seconds_tokens):
        assert render("{$currentDateTime}", record, seconds_tokens) == "1704164645"

    def test_millisecond_unit(self, record, fixed_now):
        tokens = TimeTokenResolver(PollingClock.from_epoch(5000, use_epoch_milliseconds=True), now=fixed_now)
        assert render("{$lastPollingDateTime}/{$currentDateTime}", record, tokens) == "5000/1704164645678"

    def test_parsed_template_reused(self, seconds_tokens):
        template = Template.parse("/items/{id}")
        first = render(template, MappingRecord.from_dict({"id": 1}), seconds_tokens)
        second = render(template, MappingRecord.from_dict({"id": 2}), seconds_tokens)
        assert (first, second) == ("/items/1", "/items/2")


class TestStringify:
    def test_bool(self):
        assert stringify(True) == "true"
        assert stringify(False) == "false"

    def test_dates(self):
        assert stringify(date(2024, 1, 2)) == "2024-01-02"
        assert stringify(datetime(2024, 1, 2, 3, 4)) == "2024-01-02T03:04:00"

    def test_none_and_numbers(self):
        assert stringify(None) == ""
        assert stringify(2.5) == "2.5"


# ── Headers ──────────────────────────────────────────────────────────────


class TestHeaders:
    def test_parse_specs(self):
        assert parse_header_specs("A:1|B:2") == ["A:1", "B:2"]
        assert parse_header_specs("") == []
        assert parse_header_specs("A:1| |") == ["A:1"]

    def test_split_on_first_colon(self, context):
        assert render_header("Authorization: Basic a:b", context) == ("Authorization", "Basic a:b")

    def test_name_and_value_rendered(self, context):
        assert render_header("X-{name}:{id}", context) == ("X-alpha", "42")

    def test_value_can_use_time_tokens(self, context):
        assert render_header("X-Since:{$lastPollingDateTime}", context) == ("X-Since", "1000")

    def test_missing_colon_raises(self, context):
        with pytest.raises(InvalidHeaderError):
            render_header("NoColonHere", context)

    def test_empty_name_raises(self, context):
        with pytest.raises(InvalidHeaderError):
            render_header(":value", context)

    def test_bad_spec_excluded_others_applied(self, context):
        rendered = render_headers(["Accept:text/xml", "NoColonHere", "X-Id:{id}"], context)
        assert rendered.headers == (("Accept", "text/xml"), ("X-Id", "42"))
        assert rendered.rejected == ("NoColonHere",)

    def test_header_template_splits_once(self):
        header = HeaderTemplate.parse("X-{name}:a:{id}")
        assert header.name.placeholders == ("name",)
        assert header.value.placeholders == ("id",)

    def test_header_template_without_colon_raises(self):
        with pytest.raises(InvalidHeaderError):
            HeaderTemplate.parse("NoColonHere")

    def test_parse_templates_drops_and_logs_bad_specs(self, monkeypatch):
        errors = []

        class Spy:
            def error(self, event, **kw):
                errors.append((event, kw["context"]["header_spec"]))

        monkeypatch.setattr("httpbridge.templating.engine.logger", Spy())
        headers = parse_header_templates(["Accept:text/xml", "NoColonHere"])
        assert [h.spec for h in headers] == ["Accept:text/xml"]
        assert errors == [("template.invalid_header", "NoColonHere")]

    def test_parsed_templates_render_without_logging(self, monkeypatch, context):
        headers = parse_header_templates(["X-Id:{id}", "NoColonHere"])
        errors = []

        class Spy:
            def error(self, event, **kw):
                errors.append(event)

        monkeypatch.setattr("httpbridge.templating.engine.logger", Spy())
        for _ in range(3):
            assert render_headers(headers, context).headers == (("X-Id", "42"),)
        assert errors == []

    def test_duplicate_names_kept_in_order(self, context):
        rendered = render_headers(["X-Tag:a", "X-Tag:b"], context)
        assert rendered.headers == (("X-Tag", "a"), ("X-Tag", "b"))
