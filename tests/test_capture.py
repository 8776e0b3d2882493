"""Tests for cookie text handling and the in-memory capture/apply adapters."""

from tokenkeep.capture import (
    COOKIE_EPOCH,
    MemoryMedium,
    StaticCaptureAdapter,
    build_cookie_string,
    collect_items,
    parse_cookie_header,
)
from tokenkeep.protocol import ApplyTarget, CaptureAdapter
from tokenkeep.types import Item


class TestParseCookieHeader:
    def test_basic(self):
        assert parse_cookie_header("a=1; b=2") == {"a": "1", "b": "2"}

    def test_whitespace_and_junk(self):
        header = " a=1 ;;  flag ; c= "
        assert parse_cookie_header(header) == {"a": "1", "c": ""}

    def test_value_decoded(self):
        assert parse_cookie_header("b=x%20y%3Bz") == {"b": "x y;z"}

    def test_value_keeps_equals(self):
        assert parse_cookie_header("tok=a=b") == {"tok": "a=b"}

    def test_later_duplicate_wins(self):
        assert parse_cookie_header("a=1; a=2") == {"a": "2"}

    def test_empty(self):
        assert parse_cookie_header("") == {}
        assert parse_cookie_header(None) == {}


class TestBuildCookieString:
    def test_path_scoped(self):
        assert build_cookie_string("session", "abc") == "session=abc; path=/"

    def test_value_encoded(self):
        assert build_cookie_string("k", "a b;c/d") == "k=a%20b%3Bc%2Fd; path=/"

    def test_unreserved_kept(self):
        assert build_cookie_string("k", "a!b*(c)'") == "k=a!b*(c)'; path=/"

    def test_expires(self):
        assert build_cookie_string("k", "", COOKIE_EPOCH) == f"k=; path=/; expires={COOKIE_EPOCH}"

    def test_secure_prefix(self):
        assert build_cookie_string("__Host-id", "1").endswith("; Secure")
        assert build_cookie_string("__Secure-id", "1").endswith("; Secure")
        assert "Secure" not in build_cookie_string("id", "1")

    def test_none_value(self):
        assert build_cookie_string("k", None) == "k=; path=/"

    def test_round_trip_through_header(self):
        value = "a b;c=d/é"
        assignment = build_cookie_string("k", value).split("; ")[0]
        assert parse_cookie_header(assignment) == {"k": value}


class TestCollectItems:
    def test_local_before_cookies(self):
        items = collect_items({"token": "t"}, {"session": "s"})
        assert items == [Item("localStorage", "token", "t"), Item("Cookie", "session", "s")]

    def test_extra_cookies_fill_gaps(self):
        items = collect_items(cookies={"a": "page"}, extra_cookies={"a": "api", "httponly": "h"})
        assert [(i.key, i.value) for i in items] == [("a", "page"), ("httponly", "h")]

    def test_empty_keys_dropped(self):
        items = collect_items({"": "x"}, {"": "y", "k": "v"})
        assert [i.key for i in items] == ["k"]

    def test_none_values_become_empty(self):
        items = collect_items({"a": None}, extra_cookies={"b": None})
        assert [i.value for i in items] == ["", ""]

    def test_nothing(self):
        assert collect_items() == []


class TestAdapters:
    def test_static_adapter(self):
        adapter = StaticCaptureAdapter(
            local={"token": "t"},
            cookie_header="session=abc",
            extra_cookies={"sid": "h"},
        )
        assert [(i.type, i.key) for i in adapter.collect()] == [
            ("localStorage", "token"), ("Cookie", "session"), ("Cookie", "sid"),
        ]

    def test_static_adapter_empty(self):
        assert StaticCaptureAdapter().collect() == []

    def test_protocols(self):
        assert isinstance(StaticCaptureAdapter(), CaptureAdapter)
        assert isinstance(MemoryMedium(), CaptureAdapter)
        assert isinstance(MemoryMedium(), ApplyTarget)


class TestMemoryMedium:
    def test_set_cookie_records_write(self):
        medium = MemoryMedium()
        medium.set_cookie("session", "a b")
        assert medium.cookies() == {"session": "a b"}
        assert medium.cookie_writes == ["session=a%20b; path=/"]

    def test_remove_cookie_expires(self):
        medium = MemoryMedium(cookies={"session": "abc"})
        medium.remove_cookie("session")
        assert medium.cookies() == {}
        assert medium.cookie_writes == [f"session=; path=/; expires={COOKIE_EPOCH}"]

    def test_local(self):
        medium = MemoryMedium(local={"a": "1"})
        medium.set_local("b", "2")
        medium.remove_local("a")
        medium.remove_local("missing")
        assert medium.local_entries() == {"b": "2"}

    def test_accessors_return_copies(self):
        medium = MemoryMedium(local={"a": "1"}, cookies={"c": "3"})
        medium.local_entries()["a"] = "changed"
        medium.cookies().clear()
        assert medium.local_entries() == {"a": "1"}
        assert medium.cookies() == {"c": "3"}

    def test_collect(self):
        medium = MemoryMedium(local={"a": "1"}, cookies={"c": "3"})
        assert [i.key for i in medium.collect()] == ["a", "c"]
