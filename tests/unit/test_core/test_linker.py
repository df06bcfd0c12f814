"""Unit tests for the datasource linker."""

import pytest

from databinder.core.linker import DatasourceLinkConfig, Linker, MethodConfig
from databinder.fetch.errors import InvalidConfigError
from databinder.fetch.models import FetchOptions
from tests.helpers.datasources import StaticDatasource


@pytest.fixture
def linker() -> Linker:
    """Create a linker with one configured and one bare datasource."""
    return Linker(
        [StaticDatasource("users"), StaticDatasource("orders")],
        {
            "users": DatasourceLinkConfig(
                method_config=MethodConfig(
                    method_name="alternate",
                    options=FetchOptions(batch_size=10),
                ),
                property_mapping={"n": "number"},
            )
        },
    )


class TestLinker:
    """Tests for Linker."""

    @pytest.mark.unit
    def test_datasource_ids_in_order(self, linker: Linker) -> None:
        """Ids are reported in insertion order."""
        assert linker.datasource_ids == ["users", "orders"]

    @pytest.mark.unit
    def test_duplicate_ids_rejected(self) -> None:
        """Two datasources may not share an id."""
        with pytest.raises(InvalidConfigError):
            Linker([StaticDatasource("a"), StaticDatasource("a")])

    @pytest.mark.unit
    def test_get_datasource(self, linker: Linker) -> None:
        """Known ids return the instance, unknown ids return None."""
        users = linker.get_datasource("users")

        assert users is not None
        assert users.id == "users"
        assert linker.get_datasource("missing") is None

    @pytest.mark.unit
    def test_get_method_for_configured_datasource(self, linker: Linker) -> None:
        """The configured method and its options are returned."""
        resolved = linker.get_method_for_datasource("users")

        assert resolved is not None
        assert resolved.method_name == "alternate"
        assert resolved.options == FetchOptions(batch_size=10)

    @pytest.mark.unit
    def test_get_method_for_unconfigured_datasource(self, linker: Linker) -> None:
        """Datasources without method configuration resolve to None."""
        assert linker.get_method_for_datasource("orders") is None

    @pytest.mark.unit
    def test_get_method_for_unknown_datasource(self, linker: Linker) -> None:
        """Unknown datasources are a configuration error."""
        with pytest.raises(InvalidConfigError):
            linker.get_method_for_datasource("missing")

    @pytest.mark.unit
    def test_get_method_unknown_name(self, linker: Linker) -> None:
        """Unknown method names are a configuration error."""
        with pytest.raises(InvalidConfigError) as exc_info:
            linker.get_method("users", "nope")

        assert "nope" in str(exc_info.value)

    @pytest.mark.unit
    def test_configured_method_must_exist(self) -> None:
        """A method config naming a missing method fails on lookup."""
        linker = Linker(
            [StaticDatasource("a")],
            {"a": DatasourceLinkConfig(method_config=MethodConfig(method_name="x"))},
        )

        with pytest.raises(InvalidConfigError):
            linker.get_method_for_datasource("a")

    @pytest.mark.unit
    def test_mapping(self, linker: Linker) -> None:
        """Mappings are returned for configured datasources only."""
        assert linker.get_mapping_for_datasource("users") == {"n": "number"}
        assert linker.get_mapping_for_datasource("orders") is None

    @pytest.mark.unit
    def test_set_mapping(self, linker: Linker) -> None:
        """set_mapping replaces the mapping and keeps the method config."""
        linker.set_mapping("users", {"n": "index"})

        assert linker.get_mapping_for_datasource("users") == {"n": "index"}
        resolved = linker.get_method_for_datasource("users")
        assert resolved is not None
        assert resolved.method_name == "alternate"

    @pytest.mark.unit
    def test_set_mapping_requires_config(self, linker: Linker) -> None:
        """Mappings cannot be set for unconfigured datasources."""
        with pytest.raises(InvalidConfigError):
            linker.set_mapping("orders", {"a": "b"})

    @pytest.mark.unit
    def test_add_and_remove(self, linker: Linker) -> None:
        """Datasources can be added and removed at runtime."""
        linker.add_datasource(
            StaticDatasource("extra"),
            DatasourceLinkConfig(property_mapping={"a": "b"}),
        )

        assert linker.datasource_ids == ["users", "orders", "extra"]
        assert linker.get_mapping_for_datasource("extra") == {"a": "b"}

        assert linker.remove_datasource("extra") is True
        assert linker.remove_datasource("extra") is False
        assert linker.get_mapping_for_datasource("extra") is None

    @pytest.mark.unit
    def test_add_duplicate_rejected(self, linker: Linker) -> None:
        """Adding an existing id is a configuration error."""
        with pytest.raises(InvalidConfigError):
            linker.add_datasource(StaticDatasource("users"))

    @pytest.mark.unit
    def test_list_methods(self, linker: Linker) -> None:
        """Method names of a datasource are listed."""
        assert linker.list_methods("orders") == ["default", "alternate"]
