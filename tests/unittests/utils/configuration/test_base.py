from collections.abc import Mapping

import pytest

from mint_runner.utils.configuration.base import ConfigMapping, ConfigurationError


class TestConfigMapping:
    def test_class_is_a_mapping(self):
        """The class is a subclass of :class:`collections.abc.Mapping`."""
        assert isinstance(ConfigMapping({}), Mapping)

    def test_assert_option_raises_exception_if_expression_is_false(self):
        """:meth:`ConfigMapping.assert_option` raises an exception if expession is False."""
        with pytest.raises(ConfigurationError):
            ConfigMapping.assert_option(False)

    def test_assert_option_completes_silently_if_expression_is_true(self):
        """:meth:`ConfigMapping.assert_option` raises no exception if expession is True."""
        ConfigMapping.assert_option(True)

    def test_assert_option_raises_configuration_error_with_given_message(self):
        """:meth:`ConfigMapping.assert_option` allows raise :exc:`ConfigurationError`
        with given message."""
        expected_message = "Custom message"
        with pytest.raises(ConfigurationError, match=expected_message):
            ConfigMapping.assert_option(False, expected_message)

    def test_assert_option_raises_custom_exception_if_exception_is_passed(self):
        """:meth:`ConfigMapping.assert_option` allows raising custom exception."""
        with pytest.raises(SyntaxError):
            ConfigMapping.assert_option(False, SyntaxError())

    def test_configuration_error_is_a_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestTypedAccessors:
    @pytest.mark.parametrize("value", [None, "", "   "], ids=["absent", "empty", "blank"])
    def test_empty_values_count_as_absent(self, value):
        config = ConfigMapping({"KEY": value})
        assert config.get_str("KEY", "default") == "default"
        assert config.get_int("KEY", 3) == 3
        assert config.get_json_array("KEY") is None

    def test_get_str_strips_whitespace(self):
        assert ConfigMapping({"KEY": "  value "}).get_str("KEY") == "value"

    def test_get_int(self):
        assert ConfigMapping({"KEY": "42"}).get_int("KEY") == 42

    def test_get_int_accepts_yaml_integers(self):
        assert ConfigMapping({"KEY": 42}).get_int("KEY") == 42

    def test_get_int_rejects_garbage(self):
        with pytest.raises(ConfigurationError, match="KEY must be an integer"):
            ConfigMapping({"KEY": "4x"}).get_int("KEY")

    def test_get_float(self):
        assert ConfigMapping({"KEY": "1.6"}).get_float("KEY") == 1.6

    def test_get_float_rejects_garbage(self):
        with pytest.raises(ConfigurationError, match="KEY must be a number"):
            ConfigMapping({"KEY": "fast"}).get_float("KEY")

    @pytest.mark.parametrize(
        "value, expected",
        argvalues=[("1", True), ("true", True), ("YES", True), ("on", True), ("0", False),
                   ("false", False), ("nope", False)],
    )
    def test_get_bool(self, value, expected):
        assert ConfigMapping({"KEY": value}).get_bool("KEY") is expected

    def test_get_bool_default(self):
        assert ConfigMapping({}).get_bool("KEY") is False

    def test_get_csv_drops_blank_items(self):
        assert ConfigMapping({"KEY": " a, ,b ,"}).get_csv("KEY") == ["a", "b"]

    def test_get_csv_absent(self):
        assert ConfigMapping({}).get_csv("KEY") == []

    def test_get_json_array(self):
        assert ConfigMapping({"KEY": '[1, "0x02"]'}).get_json_array("KEY") == [1, "0x02"]

    def test_get_json_array_passes_parsed_lists_through(self):
        assert ConfigMapping({"KEY": [1, 2]}).get_json_array("KEY") == [1, 2]

    def test_get_json_array_rejects_invalid_json(self):
        with pytest.raises(ConfigurationError, match="KEY invalid JSON"):
            ConfigMapping({"KEY": "[1,"}).get_json_array("KEY")

    def test_get_json_array_rejects_objects(self):
        with pytest.raises(ConfigurationError, match="must be a JSON array"):
            ConfigMapping({"KEY": '{"a": 1}'}).get_json_array("KEY")
