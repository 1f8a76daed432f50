"""Whole-trace formatting: frame lines, hiding, source and module data."""

import os

import pytest

from stackrite.config import CleanerConfig, ColorFormat
from stackrite.descriptors import FrameRef, MethodRef, StackTrace, TypeRef, make_generic
from stackrite.errors import MetadataError
from stackrite.frames import format_trace, shorten_path, source_data
from stackrite.tokens import TokenRole

from .samples import EXECUTION_CONTEXT, build_program, build_shop, spans_text, trace_of

NS = "Shop.Services.OrderService"


@pytest.fixture
def shop():
    return build_shop()


def text(trace, **options):
    options.setdefault("include_source_data", False)
    return spans_text(format_trace(trace, CleanerConfig(**options)))


class TestFrameLines:
    def test_empty_trace(self):
        assert list(format_trace(StackTrace(), CleanerConfig())) == []

    def test_one_frame_per_line(self, shop):
        program = build_program()
        trace = trace_of(program.main, shop.submit)
        assert text(trace) == (
            " at static void global::Program.Main(string[] args)\n"
            f" at Task<bool> {NS}.SubmitAsync(Order order, int retries)"
        )

    def test_at_prefix_role(self, shop):
        spans = list(format_trace(trace_of(shop.ctor), CleanerConfig()))
        assert spans[0] == (" at ", TokenRole.FLOW_KEYWORD)

    def test_frames_without_method_skipped(self, shop):
        trace = StackTrace([FrameRef(None), FrameRef(shop.ctor)])
        assert text(trace) == f" at {NS}(IOrderRepository repository)"


class TestHiddenFrames:
    def test_hidden_type_skipped(self, shop):
        program = build_program()
        trace = trace_of(program.main, program.run_internal, shop.submit)
        assert "RunInternal" not in text(trace)
        assert text(trace).count(" at ") == 2

    def test_warning_once(self, shop):
        program = build_program()
        trace = trace_of(program.run_internal, shop.ctor, program.run_internal)
        result = text(trace, warn_for_hidden_lines=True)
        assert result == (
            f" at {NS}(IOrderRepository repository)\n"
            "Some lines hidden for readability."
        )
        spans = list(format_trace(trace, CleanerConfig(warn_for_hidden_lines=True)))
        assert spans[-1].role is TokenRole.LINES_HIDDEN_WARNING

    def test_warning_without_visible_frames(self):
        program = build_program()
        trace = trace_of(program.run_internal)
        assert text(trace, warn_for_hidden_lines=True) == "Some lines hidden for readability."
        assert text(trace) == ""

    def test_warning_suppressed_by_caller(self):
        program = build_program()
        spans = format_trace(
            trace_of(program.run_internal),
            CleanerConfig(warn_for_hidden_lines=True),
            warn_if_hidden=False,
        )
        assert list(spans) == []

    def test_hidden_flag_on_frame(self, shop):
        trace = StackTrace([FrameRef(shop.ctor, hidden=True), FrameRef(shop.submit)])
        assert text(trace).count(" at ") == 1

    def test_custom_hidden_types(self, shop):
        trace = trace_of(shop.ctor, build_program().run_internal)
        result = text(trace, hidden_types=[shop.service])
        assert "OrderService" not in result
        assert "RunInternal" in result

    def test_constructed_generic_matches_definition(self):
        definition = TypeRef("Pipeline`1", "Shop.Internal")
        constructed = make_generic(definition, TypeRef("Order"), namespace="Shop.Other")
        config = CleanerConfig(hidden_types={"Shop.Internal.Pipeline`1"})
        assert config.is_hidden(constructed)
        assert not config.is_hidden(TypeRef("Pipeline`1", "Shop.Other"))

    def test_default_hides_execution_context(self):
        assert CleanerConfig().is_hidden(EXECUTION_CONTEXT)


class TestSourceData:
    @pytest.fixture
    def frame(self, shop):
        return FrameRef(
            shop.ctor,
            file_name="/srv/shop/src/Services/OrderService.cs",
            line=42,
            column=17,
            offset=0x1F,
        )

    def test_line_and_column(self, frame):
        assert source_data(frame, CleanerConfig()) == " LN #42 COL #17"

    def test_all_fields(self, frame):
        config = CleanerConfig(include_il_offset=True, include_file_data=True)
        assert source_data(frame, config) == (
            ' LN #42 COL #17 IL [0x00001F] FILE: "Services/OrderService.cs"'
        )

    def test_missing_values_omitted(self, shop):
        frame = FrameRef(shop.ctor, line=7)
        config = CleanerConfig(include_il_offset=True, include_file_data=True)
        assert source_data(frame, config) == " LN #7"
        assert source_data(FrameRef(shop.ctor), config) == ""

    def test_number_formatter(self, shop):
        frame = FrameRef(shop.ctor, line=12345)
        config = CleanerConfig(number_formatter=lambda n: f"{n:,}")
        assert source_data(frame, config) == " LN #12,345"

    def test_file_name_permission_error(self, frame):
        def denied():
            raise PermissionError("access denied")

        frame.get_file_name = denied
        assert source_data(frame, CleanerConfig(include_file_data=True)) == " LN #42 COL #17"

    def test_new_line(self, frame):
        result = spans_text(format_trace(StackTrace([frame]), CleanerConfig()))
        assert result == f" at {NS}(IOrderRepository repository)\n LN #42 COL #17"

    def test_same_line(self, frame):
        config = CleanerConfig(put_source_data_on_new_line=False)
        result = spans_text(format_trace(StackTrace([frame]), config))
        assert result == f" at {NS}(IOrderRepository repository) LN #42 COL #17"

    def test_extra_data_role(self, frame):
        spans = list(format_trace(StackTrace([frame]), CleanerConfig()))
        assert spans[-1] == ("\n LN #42 COL #17", TokenRole.EXTRA_DATA)

    def test_disabled(self, frame):
        config = CleanerConfig(include_source_data=False)
        assert "LN #" not in spans_text(format_trace(StackTrace([frame]), config))


class TestModuleData:
    def test_module_name(self, shop):
        result = text(trace_of(shop.ctor), include_assembly_data=True)
        assert result == (
            f' at {NS}(IOrderRepository repository)\n MODULE: "Shop, Version=1.0.0.0"'
        )

    def test_module_location(self, shop):
        result = text(
            trace_of(shop.ctor), include_assembly_data=True, include_file_data=True
        )
        assert result.endswith('\n LOCATION: "bin/Shop.dll"')

    def test_location_failure(self, shop):
        def broken():
            raise MetadataError("dynamic module")

        shop.module.get_location = broken
        result = text(
            trace_of(shop.ctor), include_assembly_data=True, include_file_data=True
        )
        assert "LOCATION" not in result
        assert "MODULE" in result

    def test_method_without_module(self):
        result = text(trace_of(MethodRef("helper")), include_assembly_data=True)
        assert result == " at global::helper()"


class TestParagraphs:
    def test_html_paragraphs(self, shop):
        config = CleanerConfig(color_format=ColorFormat.HTML, include_source_data=False)
        spans = list(format_trace(trace_of(shop.ctor, shop.submit), config))
        tags = [s.text for s in spans if s.role is TokenRole.END_TAG]
        assert tags == ["<p>", "</p>", "<p>", "</p>"]
        assert "\n" not in spans_text(spans)

    def test_source_data_paragraph(self, shop):
        config = CleanerConfig(color_format=ColorFormat.HTML)
        frame = FrameRef(shop.ctor, line=3)
        spans = list(format_trace(StackTrace([frame]), config))
        tags = [s.text for s in spans if s.role is TokenRole.END_TAG]
        assert tags == ["<p>", "</p>", "<p>", "</p>"]
        assert (" LN #3", TokenRole.EXTRA_DATA) in spans

    def test_warning_paragraph(self):
        program = build_program()
        config = CleanerConfig(color_format=ColorFormat.HTML, warn_for_hidden_lines=True)
        spans = list(format_trace(trace_of(program.run_internal), config))
        assert spans_text(spans) == "<p>Some lines hidden for readability.</p>"


class TestShortenPath:
    def test_last_directory(self):
        assert shorten_path("/srv/shop/src/Services/OrderService.cs") == (
            "Services/OrderService.cs"
        )

    def test_root(self):
        assert shorten_path("/setup.py") == "~/setup.py"

    def test_bare_name(self):
        assert shorten_path("<stdin>") == "<stdin>"

    def test_relative_to_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "pkg" / "sub" / "mod.py"
        assert shorten_path(str(path)) == "sub/mod.py"
        assert shorten_path(str(tmp_path / "top.py")) == "top.py"
