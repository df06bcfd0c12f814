"""Unit tests for URL building, authentication and cookie merging."""

import pytest

from databinder.fetch.config import AuthConfig, AuthOverride, AuthType, RestApiConfig
from databinder.fetch.errors import InvalidConfigError
from databinder.fetch.models import (
    FetchOptions,
    PaginationOptions,
    QueryOptions,
    SortDirection,
    SortSpec,
)
from databinder.fetch.request import (
    apply_authentication,
    build_request,
    build_url,
    merge_cookies,
)


BASE_URL = "https://api.example.com/v1/"


@pytest.fixture
def config() -> RestApiConfig:
    """Create a datasource config with a couple of named endpoints."""
    return RestApiConfig(
        base_url=BASE_URL,
        endpoints={"users": "people", "active": "people?state=on&limit=5"},
        timeout_ms=5000,
    )


class TestBuildUrl:
    """Tests for build_url."""

    @pytest.mark.unit
    def test_literal_endpoint(self, config: RestApiConfig) -> None:
        """Unmapped endpoints resolve relative to the base URL."""
        assert build_url(config, "orders") == "https://api.example.com/v1/orders"

    @pytest.mark.unit
    def test_named_endpoint(self, config: RestApiConfig) -> None:
        """Named endpoints are looked up, with or without a leading slash."""
        assert build_url(config, "users") == "https://api.example.com/v1/people"
        assert build_url(config, "/users") == "https://api.example.com/v1/people"

    @pytest.mark.unit
    def test_named_endpoint_keeps_fixed_query(self, config: RestApiConfig) -> None:
        """A query string in the endpoint table survives sanitization."""
        url = build_url(config, "active", PaginationOptions(enabled=True))

        assert url == "https://api.example.com/v1/people?state=on&limit=5&page=1"

    @pytest.mark.unit
    def test_pagination(self, config: RestApiConfig) -> None:
        """Enabled pagination adds page and pageSize."""
        pagination = PaginationOptions(enabled=True, page_size=20, start_page=2)

        url = build_url(config, "users", pagination)

        assert url == "https://api.example.com/v1/people?page=2&pageSize=20"

    @pytest.mark.unit
    def test_disabled_pagination_adds_nothing(self, config: RestApiConfig) -> None:
        """Disabled pagination leaves the URL alone."""
        pagination = PaginationOptions(enabled=False, page_size=20)

        assert build_url(config, "users", pagination) == (
            "https://api.example.com/v1/people"
        )

    @pytest.mark.unit
    def test_filters_and_sort(self, config: RestApiConfig) -> None:
        """Filters are encoded (objects as JSON) and sort is field:direction."""
        query = QueryOptions(
            filters={"status": "active", "meta": {"a": 1}, "flag": True},
            sort=[
                SortSpec(field="name"),
                SortSpec(field="age", direction=SortDirection.DESC),
            ],
        )

        url = build_url(config, "users", query=query)

        assert url == (
            "https://api.example.com/v1/people"
            "?status=active&meta=%7B%22a%22%3A1%7D&flag=true"
            "&sort=name%3Aasc%2Cage%3Adesc"
        )

    @pytest.mark.unit
    def test_query_values_are_sanitized(self, config: RestApiConfig) -> None:
        """Control characters and traversal are removed from query values."""
        query = QueryOptions(filters={"name": "a\nb", "path": "../secret"})

        url = build_url(config, "users", query=query)

        assert url.endswith("?name=ab&path=secret")

    @pytest.mark.unit
    def test_traversal_is_removed_from_path(self, config: RestApiConfig) -> None:
        """Traversal sequences cannot escape the base path."""
        url = build_url(config, "../../etc/passwd")

        assert url == "https://api.example.com/v1/etc/passwd"

    @pytest.mark.unit
    def test_injection_characters_removed(self, config: RestApiConfig) -> None:
        """Shell and markup characters are stripped from the path."""
        assert build_url(config, "items;rm<x>") == "https://api.example.com/v1/itemsrmx"

    @pytest.mark.unit
    def test_idempotent(self, config: RestApiConfig) -> None:
        """Identical inputs produce identical URLs."""
        pagination = PaginationOptions(enabled=True, page_size=10)
        query = QueryOptions(filters={"q": "x y"})

        first = build_url(config, "users", pagination, query)
        second = build_url(config, "users", pagination, query)

        assert first == second

    @pytest.mark.unit
    def test_missing_config(self) -> None:
        """A missing config is an InvalidConfigError."""
        with pytest.raises(InvalidConfigError):
            build_url(None, "users")

    @pytest.mark.unit
    def test_missing_base_url(self) -> None:
        """A missing base URL is an InvalidConfigError."""
        with pytest.raises(InvalidConfigError) as exc_info:
            build_url(RestApiConfig(), "users")

        assert exc_info.value.context["property_name"] == "base_url"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "base_url",
        ["ftp://files.example.com", "not a url", "https://", "http://host:99999"],
    )
    def test_malformed_base_url(self, base_url: str) -> None:
        """Non-http(s) or malformed base URLs are rejected."""
        with pytest.raises(InvalidConfigError):
            build_url(RestApiConfig(base_url=base_url), "users")


class TestApplyAuthentication:
    """Tests for apply_authentication."""

    @pytest.mark.unit
    def test_same_kind_override_wins(self) -> None:
        """A bearer override of a bearer base replaces the token."""
        headers = apply_authentication(
            {},
            AuthConfig(type=AuthType.BEARER, token="A"),
            AuthOverride(type=AuthType.BEARER, token="B"),
        )

        assert headers == {"Authorization": "Bearer B"}

    @pytest.mark.unit
    def test_different_kind_override_replaces_base(self) -> None:
        """A basic override of a bearer base ignores the bearer entirely."""
        headers = apply_authentication(
            {},
            AuthConfig(type=AuthType.BEARER, token="A"),
            AuthOverride(type=AuthType.BASIC, username="u", password="p"),
        )

        assert headers == {"Authorization": "Basic dTpw"}

    @pytest.mark.unit
    def test_untyped_override_patches_fields(self) -> None:
        """An override without a type patches the base fields."""
        headers = apply_authentication(
            {},
            AuthConfig(type=AuthType.BASIC, username="user", password="pass"),
            AuthOverride(username="other"),
        )

        assert headers == {"Authorization": "Basic b3RoZXI6cGFzcw=="}

    @pytest.mark.unit
    def test_base_only(self) -> None:
        """Base authentication alone is applied."""
        headers = apply_authentication(
            {"Accept": "application/json"},
            AuthConfig(type=AuthType.BASIC, username="user", password="pass"),
        )

        assert headers == {
            "Accept": "application/json",
            "Authorization": "Basic dXNlcjpwYXNz",
        }

    @pytest.mark.unit
    def test_custom_header_patch(self) -> None:
        """Custom overrides patch the header value and keep the name."""
        headers = apply_authentication(
            {},
            AuthConfig(type=AuthType.CUSTOM, header_name="X-Key", header_value="old"),
            AuthOverride(type=AuthType.CUSTOM, header_value="new"),
        )

        assert headers == {"X-Key": "new"}

    @pytest.mark.unit
    def test_custom_override_of_bearer(self) -> None:
        """A custom override of a bearer base emits only the custom header."""
        headers = apply_authentication(
            {},
            AuthConfig(type=AuthType.BEARER, token="A"),
            AuthOverride(type=AuthType.CUSTOM, header_name="X-Api", header_value="k"),
        )

        assert headers == {"X-Api": "k"}

    @pytest.mark.unit
    def test_no_auth_is_noop(self) -> None:
        """Without either layer no header is added and a copy is returned."""
        original = {"Accept": "text/plain"}

        headers = apply_authentication(original)

        assert headers == original
        assert headers is not original

    @pytest.mark.unit
    def test_incomplete_credentials_add_nothing(self) -> None:
        """Bearer without a token and basic without a password are skipped."""
        assert apply_authentication({}, AuthConfig(type=AuthType.BEARER)) == {}
        assert (
            apply_authentication({}, AuthConfig(type=AuthType.BASIC, username="u"))
            == {}
        )

    @pytest.mark.unit
    def test_replaces_existing_header_case_insensitively(self) -> None:
        """An existing authorization header of any case is replaced."""
        headers = apply_authentication(
            {"authorization": "stale"},
            AuthConfig(type=AuthType.BEARER, token="fresh"),
        )

        assert headers == {"Authorization": "Bearer fresh"}

    @pytest.mark.unit
    def test_header_values_are_sanitized(self) -> None:
        """CR/LF cannot be smuggled through a token."""
        headers = apply_authentication(
            {},
            AuthConfig(type=AuthType.BEARER, token="abc\r\nX-Evil: 1"),
        )

        assert headers == {"Authorization": "Bearer abcX-Evil: 1"}

    @pytest.mark.unit
    def test_cookie_auth_adds_no_headers(self) -> None:
        """Cookie authentication is left to merge_cookies."""
        auth = AuthConfig(type=AuthType.COOKIE, cookies={"session": "s"})

        assert apply_authentication({}, auth) == {}


class TestMergeCookies:
    """Tests for merge_cookies."""

    @pytest.mark.unit
    def test_union_last_writer_wins(self) -> None:
        """Explicit cookies override auth cookies of the same name."""
        cookies = merge_cookies(
            AuthConfig(type=AuthType.COOKIE, cookies={"session": "a b"}),
            AuthOverride(type=AuthType.COOKIE, cookies={"theme": "dark"}),
            {"session": "x;y"},
        )

        assert cookies == {"session": "x%3By", "theme": "dark"}

    @pytest.mark.unit
    def test_non_cookie_layers_ignored(self) -> None:
        """Cookies on non-cookie auth layers are not sent."""
        cookies = merge_cookies(
            AuthConfig(type=AuthType.BEARER, token="t", cookies={"a": "1"}),
            None,
            None,
        )

        assert cookies == {}

    @pytest.mark.unit
    def test_encoding_keeps_unreserved(self) -> None:
        """Unreserved characters are not percent-encoded."""
        assert merge_cookies(cookies={"k": "a-b_c.d!~*'()"}) == {"k": "a-b_c.d!~*'()"}


class TestBuildRequest:
    """Tests for build_request."""

    @pytest.mark.unit
    def test_header_precedence(self) -> None:
        """Explicit headers override auth, which overrides config headers."""
        config = RestApiConfig(
            base_url=BASE_URL,
            headers={"X-Trace": "1", "content-type": "text/plain"},
            auth=AuthConfig(type=AuthType.BEARER, token="cfg"),
            timeout_ms=1500,
        )
        options = FetchOptions(
            http_method="post",
            body={"a": 1},
            headers={"authorization": "Bearer explicit"},
            cookies={"sid": "42"},
        )

        request = build_request(config, "users", options)

        assert request.url == "https://api.example.com/v1/users"
        assert request.method == "POST"
        assert request.body == {"a": 1}
        assert request.timeout_ms == 1500
        assert request.headers == {
            "content-type": "text/plain",
            "X-Trace": "1",
            "authorization": "Bearer explicit",
            "Cookie": "sid=42",
        }

    @pytest.mark.unit
    def test_option_endpoint_wins(self, config: RestApiConfig) -> None:
        """options.endpoint takes priority over the endpoint argument."""
        request = build_request(config, "orders", FetchOptions(endpoint="users"))

        assert request.url == "https://api.example.com/v1/people"
        assert request.headers["Content-Type"] == "application/json"

    @pytest.mark.unit
    def test_auth_override_per_call(self) -> None:
        """Per-call overrides are applied on top of the datasource auth."""
        config = RestApiConfig(
            base_url=BASE_URL,
            auth=AuthConfig(type=AuthType.BEARER, token="A"),
        )
        options = FetchOptions(auth_override=AuthOverride(token="B"))

        request = build_request(config, "users", options)

        assert request.headers["Authorization"] == "Bearer B"
