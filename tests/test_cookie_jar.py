from ipastore_api.services.cookie_jar import (
    Cookie,
    CookieJar,
    merge,
    parse_set_cookie_headers,
)


def test_parse_extracts_value_and_attributes():
    cookies = parse_set_cookie_headers(
        ["mz_at0=AwQAAA; Path=/; Domain=.apple.com; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Secure; HttpOnly"]
    )

    assert len(cookies) == 1
    cookie = cookies[0]
    assert cookie.name == "mz_at0"
    assert cookie.value == "AwQAAA"
    assert cookie.domain == ".apple.com"
    assert cookie.path == "/"
    assert cookie.expires == "Wed, 21 Oct 2026 07:28:00 GMT"


def test_parse_discards_unparseable_lines():
    cookies = parse_set_cookie_headers(["", "   ", "garbage", "s=abc; Path=/"])

    assert [cookie.name for cookie in cookies] == ["s"]


def test_merge_overwrites_by_name():
    jar = merge(CookieJar(), [Cookie("a", "1")])
    jar = merge(jar, [Cookie("a", "2")])

    assert jar.values_by_name() == {"a": "2"}


def test_merge_of_disjoint_names_is_order_independent():
    first = merge(merge(CookieJar(), [Cookie("a", "1")]), [Cookie("b", "2")])
    second = merge(merge(CookieJar(), [Cookie("b", "2")]), [Cookie("a", "1")])

    assert first == second
    assert first.values_by_name() == {"a": "1", "b": "2"}


def test_merge_with_nothing_returns_the_same_jar():
    jar = CookieJar([Cookie("a", "1")])

    assert merge(jar, []) is jar
    assert jar.merge([]) is jar


def test_merge_does_not_touch_the_original_jar():
    jar = CookieJar([Cookie("a", "1"), Cookie("keep", "x")])

    merged = jar.merge([Cookie("a", "2")])

    assert jar.values_by_name() == {"a": "1", "keep": "x"}
    assert merged.values_by_name() == {"a": "2", "keep": "x"}


def test_header_value_and_persistence_round_trip():
    jar = CookieJar([Cookie("a", "1", domain=".apple.com", path="/"), Cookie("b", "2")])

    assert jar.header_value() == "a=1; b=2"
    assert CookieJar.from_list(jar.to_list()) == jar
    assert CookieJar().header_value() == ""


def test_parse_keeps_lines_with_unknown_attributes():
    cookies = parse_set_cookie_headers(["a=1; Path=/; Partitioned", "b=2; SameSite=None; Secure"])

    assert [(cookie.name, cookie.value, cookie.path) for cookie in cookies] == [
        ("a", "1", "/"),
        ("b", "2", None),
    ]


def test_parse_keeps_values_with_spaces():
    cookies = parse_set_cookie_headers(["c=hello world; Path=/"])

    assert [(cookie.name, cookie.value) for cookie in cookies] == [("c", "hello world")]


def test_parse_drops_unreadable_expiry_but_keeps_cookie():
    (cookie,) = parse_set_cookie_headers(["d=4; Expires=not-a-date"])

    assert cookie.value == "4"
    assert cookie.expires is None
