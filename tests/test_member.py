"""Method signature reconstruction."""

import threading

import pytest

from stackrite.cleaner import StackCleaner
from stackrite.config import CleanerConfig, ColorFormat
from stackrite.descriptors import (
    FieldRef,
    MethodRef,
    ModuleRef,
    ParameterRef,
    TypeRef,
    array_of,
    by_ref,
    make_generic,
)
from stackrite.errors import MetadataError
from stackrite.member import (
    MemberKind,
    StateMachineCache,
    _same_type,
    classify,
    find_container,
    format_member,
    format_parameters,
    name_fragment,
    recover_by_name,
    resolve_state_machine,
    state_machine_kind,
)
from stackrite.tokens import TokenRole

from .samples import (
    INT,
    LIST,
    STRING,
    build_program,
    build_shop,
    move_next,
    spans_text,
    trace_of,
)

NS = "Shop.Services.OrderService"


@pytest.fixture
def shop():
    return build_shop()


def text(method, cache=None, **options):
    return spans_text(format_member(method, CleanerConfig(**options), cache))


class TestSignatures:
    def test_plain_method(self, shop):
        assert text(shop.submit) == (
            f"Task<bool> {NS}.SubmitAsync(Order order, int retries)"
        )

    def test_without_namespaces(self, shop):
        assert text(shop.submit, include_namespaces=False) == (
            "Task<bool> OrderService.SubmitAsync(Order order, int retries)"
        )

    def test_constructor(self, shop):
        assert text(shop.ctor) == f"{NS}(IOrderRepository repository)"

    def test_static_generic_method(self, shop):
        assert text(shop.map) == (
            f"static TResult {NS}.Map<TResult>(Func<Order, TResult> selector)"
        )

    def test_params_array(self, shop):
        assert text(shop.log) == f"void {NS}.Log(string format, params object[] args)"
        spans = list(format_member(shop.log, CleanerConfig()))
        assert ("params ", TokenRole.KEYWORD) in spans

    def test_out_parameter(self, shop):
        assert text(shop.try_parse) == (
            f"static bool {NS}.TryParse(string text, out int value)"
        )

    def test_empty_parameter_list_is_one_span(self, shop):
        spans = list(format_member(shop.raise_changed, CleanerConfig()))
        assert ("()", TokenRole.PUNCTUATION) not in spans  # accessors have no list
        spans = list(format_parameters([], CleanerConfig()))
        assert spans == [("()", TokenRole.PUNCTUATION)]

    def test_global_namespace(self):
        program = build_program()
        assert text(program.main) == "static void global::Program.Main(string[] args)"
        assert text(program.main, include_namespaces=False) == (
            "static void Program.Main(string[] args)"
        )

    def test_module_level_function(self):
        func = MethodRef("helper", namespace="tools.util")
        assert text(func) == "tools.util.helper()"
        assert text(MethodRef("helper")) == "global::helper()"
        assert text(MethodRef("helper"), include_namespaces=False) == "helper()"

    def test_namespace_segments_when_colored(self, shop):
        spans = list(format_member(shop.ctor, CleanerConfig(color_format=ColorFormat.ANSI)))
        assert spans[:3] == [
            ("Shop", TokenRole.NAMESPACE),
            (".", TokenRole.PUNCTUATION),
            ("Services", TokenRole.NAMESPACE),
        ]

    def test_namespace_single_span_when_plain(self, shop):
        spans = list(format_member(shop.ctor, CleanerConfig()))
        assert spans[0] == ("Shop.Services", TokenRole.NAMESPACE)


class TestAccessors:
    def test_property_getter(self, shop):
        assert text(shop.get_total) == f"decimal get {NS}.Total"
        spans = list(format_member(shop.get_total, CleanerConfig()))
        assert ("Total", TokenRole.PROPERTY) in spans

    def test_property_setter(self, shop):
        assert text(shop.set_total) == f"decimal set {NS}.Total"

    def test_indexer(self, shop):
        assert text(shop.get_item) == f"Order get {NS}[int index]"
        assert text(shop.set_item) == f"Order set {NS}[int index]"

    def test_indexer_without_property_is_plain_accessor(self, shop):
        shop.service.properties = []
        assert text(shop.get_item) == f"Order get {NS}.Item"

    def test_events(self, shop):
        assert text(shop.add_changed) == f"EventHandler add {NS}.Changed"
        assert text(shop.remove_changed) == f"EventHandler remove {NS}.Changed"
        assert text(shop.raise_changed) == f"EventHandler raise {NS}.Changed"
        spans = list(format_member(shop.add_changed, CleanerConfig()))
        assert ("Changed", TokenRole.EVENT) in spans

    def test_explicit_interface_implementation(self, shop):
        assert text(shop.dispose) == f"void {NS}.IDisposable.Dispose()"

    def test_explicit_lookup_failure_keeps_raw_name(self, shop):
        def broken(interface):
            raise MetadataError("no interface map")

        shop.service.get_interface_map = broken
        assert text(shop.dispose) == f"void {NS}.System.IDisposable.Dispose()"

    def test_classify(self, shop):
        assert classify(shop.ctor, ".ctor") is MemberKind.CONSTRUCTOR
        assert classify(shop.get_item, "get_Item") is MemberKind.INDEX_GETTER
        assert classify(shop.remove_changed, "remove_Changed") is MemberKind.REMOVER
        # Only special-name methods are accessors
        assert classify(MethodRef("get_Data"), "get_Data") is MemberKind.METHOD


class TestStateMachines:
    def test_name_fragment(self):
        assert name_fragment("<SubmitAsync>d__4") == "SubmitAsync"
        assert name_fragment("<>c") is None
        assert name_fragment("MoveNext") is None

    def test_kind(self, shop):
        assert state_machine_kind(move_next(shop.submit_machine)) == (True, False)
        assert state_machine_kind(move_next(shop.numbers_machine)) == (False, True)
        assert state_machine_kind(move_next(shop.stream_machine)) == (True, True)
        assert state_machine_kind(shop.submit) is None

    def test_public_move_next_is_not_synthesized(self, shop):
        method = move_next(shop.submit_machine)
        method.is_private = False
        assert state_machine_kind(method) is None

    def test_async_from_marker(self, shop):
        assert text(move_next(shop.submit_machine)) == (
            f"async Task<bool> {NS}.SubmitAsync(Order order, int retries)"
        )

    def test_iterator_by_name(self, shop):
        assert text(move_next(shop.numbers_machine)) == (
            f"static enumerator IEnumerable<int> {NS}.Numbers()"
        )

    def test_overload_by_captured_fields(self, shop):
        assert recover_by_name(shop.find_machine) is shop.find_by_name
        assert text(move_next(shop.find_machine)) == (
            f"async Task<Order> {NS}.Find(string name)"
        )

    def test_unresolvable_overload_falls_back(self, shop):
        shop.find_machine.fields = []
        assert recover_by_name(shop.find_machine) is None
        result = text(move_next(shop.find_machine))
        assert result.startswith("async void ")
        assert result.endswith("<Find>d__7.MoveNext()")

    def test_async_iterator(self, shop):
        assert text(move_next(shop.stream_machine)) == (
            f"async enumerator IAsyncEnumerable<int> {NS}.StreamAsync()"
        )

    def test_module_scan_failure_falls_back_to_name(self, shop):
        def broken():
            raise MetadataError("module unavailable")

        shop.module.get_types = broken
        method, is_async, _, synthesized = resolve_state_machine(
            move_next(shop.submit_machine), StateMachineCache()
        )
        assert method is shop.submit
        assert is_async and synthesized

    def test_overload_by_wrapped_parameter(self):
        parser = TypeRef("Parser", "Shop.Text")
        single = MethodRef("ParseAsync", parser, parameters=[ParameterRef("value", INT)])
        many = MethodRef(
            "ParseAsync", parser, parameters=[ParameterRef("values", array_of(INT))]
        )
        parser.methods = [single, many]
        machine = TypeRef(
            "<ParseAsync>d__2",
            declaring_type=parser,
            compiler_generated=True,
            fields=[FieldRef("values", array_of(INT)), FieldRef("<>4__this", parser)],
        )
        assert recover_by_name(machine) is many

    def test_overload_by_generic_argument(self):
        parser = TypeRef("Parser", "Shop.Text")
        numbers = MethodRef(
            "ParseAsync", parser, parameters=[ParameterRef("items", make_generic(LIST, INT))]
        )
        words = MethodRef(
            "ParseAsync", parser, parameters=[ParameterRef("items", make_generic(LIST, STRING))]
        )
        parser.methods = [numbers, words]
        machine = TypeRef(
            "<ParseAsync>d__3",
            declaring_type=parser,
            compiler_generated=True,
            fields=[FieldRef("items", make_generic(LIST, STRING))],
        )
        assert recover_by_name(machine) is words

    def test_same_type_compares_shape(self):
        assert _same_type(INT, INT)
        assert not _same_type(array_of(INT), INT)
        assert not _same_type(by_ref(INT), INT)
        assert _same_type(array_of(INT), array_of(INT))
        assert not _same_type(make_generic(LIST, INT), make_generic(LIST, STRING))
        assert _same_type(make_generic(LIST, INT), make_generic(LIST, INT))
        assert not _same_type(None, INT)


class TestStateMachineCache:
    def test_scan_fills_all_entries(self, shop):
        cache = StateMachineCache()
        assert cache.get_source(shop.submit_machine) is shop.submit
        assert shop.stream_machine in cache
        assert cache.get_source(shop.stream_machine) is shop.stream

    def test_misses_are_remembered(self, shop):
        cache = StateMachineCache()
        assert cache.get_source(shop.numbers_machine) is None
        calls = []
        shop.module.get_types = lambda: calls.append(1) or []
        assert cache.get_source(shop.numbers_machine) is None
        assert calls == []

    def test_clear(self, shop):
        cache = StateMachineCache()
        cache.get_source(shop.submit_machine)
        assert len(cache)
        cache.clear()
        assert len(cache) == 0

    def test_shared_between_calls(self, shop):
        cache = StateMachineCache()
        text(move_next(shop.submit_machine), cache)
        assert shop.submit_machine in cache

    def test_concurrent_lookups_agree(self, shop):
        cache = StateMachineCache()
        results = []
        barrier = threading.Barrier(8)

        def lookup():
            barrier.wait()
            results.append(cache.get_source(shop.submit_machine))

        threads = [threading.Thread(target=lookup) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results == [shop.submit] * 8

    def test_rebuilt_descriptors_reuse_entries(self):
        cleaner = StackCleaner(CleanerConfig())
        sizes = []
        outputs = set()
        for _ in range(5):
            shop = build_shop()
            outputs.add(cleaner.get_string(trace_of(move_next(shop.submit_machine))))
            sizes.append(len(cleaner.cache))
        assert len(set(sizes)) == 1
        assert len(outputs) == 1
        assert f"async Task<bool> {NS}.SubmitAsync(Order order, int retries)" in outputs.pop()

    def test_rebuilt_descriptors_skip_the_scan(self):
        cache = StateMachineCache()
        cache.get_source(build_shop().submit_machine)
        shop = build_shop()
        shop.module.get_types = lambda: pytest.fail("module scanned twice")
        assert shop.submit_machine in cache
        assert cache.get_source(shop.submit_machine).name == shop.submit.name

    def test_module_without_types(self):
        machine = TypeRef("<Run>d__1", module=ModuleRef("Empty"), compiler_generated=True)
        assert StateMachineCache().get_source(machine) is None


class TestAnonymous:
    def test_lambda_with_container(self, shop):
        assert find_container(shop.lambda_) is shop.submit
        assert text(shop.lambda_) == (
            "anonymous bool (Order o) => { ... } in "
            f"Task<bool> {NS}.SubmitAsync(Order order, int retries)"
        )

    def test_lambda_roles(self, shop):
        spans = list(format_member(shop.lambda_, CleanerConfig()))
        assert spans[0] == ("anonymous ", TokenRole.KEYWORD)
        assert (" => ", TokenRole.METHOD) in spans
        assert (" ... ", TokenRole.EXTRA_DATA) in spans
        assert (" in ", TokenRole.FLOW_KEYWORD) in spans

    def test_lambda_container_from_marker(self, shop):
        shop.lambda_.name = "lambda"
        shop.lambda_.container = shop.log
        assert text(shop.lambda_).endswith(
            f" in void {NS}.Log(string format, params object[] args)"
        )

    def test_lambda_without_container(self, shop):
        shop.lambda_.name = "<Gone>b__0_0"
        assert text(shop.lambda_) == "anonymous bool (Order o) => { ... }"

    def test_closure_class_method(self, shop):
        assert text(shop.closure_invoke) == "anonymous void () => { ... }"

    def test_async_lambda(self, shop):
        shop.lambda_.is_async = True
        assert text(shop.lambda_).startswith("anonymous bool async (Order o) => ")
