from cpp_bridge_generator.analysis.names import BridgeNameTracker, OverloadTracker, is_valid_bridge_identifier


def test_bridge_names_prefer_the_bare_name() -> None:
    tracker = BridgeNameTracker()
    assert tracker.get_unique_name(None, "get", ()) == "get"
    assert tracker.get_unique_name("Bob", "get", ("ns",)) == "ns_Bob_get"
    assert tracker.get_unique_name("Bob", "get", ("ns",)) == "ns_Bob_get_bridge1"
    assert tracker.get_unique_name("Bob", "get", ("ns",)) == "ns_Bob_get_bridge2"


def test_bridge_names_never_use_new() -> None:
    tracker = BridgeNameTracker()
    assert tracker.get_unique_name("Bob", "new", ("ns",)) == "new_bridge"
    assert tracker.get_unique_name("Fred", "new", ()) == "Fred_new_bridge"


def test_bridge_names_are_independent_per_tracker() -> None:
    assert BridgeNameTracker().get_unique_name(None, "x", ()) == "x"
    assert BridgeNameTracker().get_unique_name(None, "x", ()) == "x"


def test_overloads_for_free_functions() -> None:
    tracker = OverloadTracker()
    assert [tracker.get_function_real_name("daft") for _ in range(3)] == ["daft", "daft1", "daft2"]


def test_overloads_are_counted_per_type() -> None:
    tracker = OverloadTracker()
    assert tracker.get_method_real_name("Bob", "get") == "get"
    assert tracker.get_method_real_name("Fred", "get") == "get"
    assert tracker.get_method_real_name("Bob", "get") == "get1"
    # methods and free functions do not share counters
    assert tracker.get_function_real_name("get") == "get"


def test_identifier_validity() -> None:
    assert is_valid_bridge_identifier("ok_1")
    assert is_valid_bridge_identifier("_private")
    assert not is_valid_bridge_identifier("1abc")
    assert not is_valid_bridge_identifier("a__b")
    assert not is_valid_bridge_identifier("fn")
    assert not is_valid_bridge_identifier("operator+")
    assert not is_valid_bridge_identifier("")


def test_derived_names_stay_unique() -> None:
    tracker = BridgeNameTracker()
    assert tracker.claim_derived_name("foo_bridge_wrapper") == "foo_bridge_wrapper"
    assert tracker.claim_derived_name("foo_bridge_wrapper") == "foo_bridge_wrapper1"
    assert tracker.claim_derived_name("foo_bridge_wrapper") == "foo_bridge_wrapper2"
    assert tracker.get_unique_name(None, "foo_bridge_wrapper1", ()) == "foo_bridge_wrapper1_bridge1"
