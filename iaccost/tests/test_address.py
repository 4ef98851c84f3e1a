"""
Tests for resource address parsing.
"""

import pytest

from iaccost.graph.address import (
    AddressParseError,
    ResourceAddress,
    format_index,
    index_sort_key,
)


def test_parse_simple_address():
    address = ResourceAddress.parse("aws_s3_bucket.logs")

    assert address.type == "aws_s3_bucket"
    assert address.name == "logs"
    assert address.module_path == ()
    assert address.mode == "managed"
    assert address.index is None
    assert str(address) == "aws_s3_bucket.logs"


def test_parse_nested_module_with_indices():
    address = ResourceAddress.parse('module.app[0].module.db["eu-west"].azurerm_mssql_database.main[2]')

    assert address.module_path == ("module.app[0]", 'module.db["eu-west"]')
    assert address.index == "2"
    assert address.local_address == "azurerm_mssql_database.main[2]"
    assert address.base_address == 'module.app[0].module.db["eu-west"].azurerm_mssql_database.main'
    assert address.wildcard_address == 'module.app[0].module.db["eu-west"].azurerm_mssql_database.main[*]'


def test_parse_for_each_key_containing_dots():
    address = ResourceAddress.parse('aws_s3_bucket.site["www.example.com"]')

    assert address.index == '"www.example.com"'
    assert address.name == "site"


def test_parse_data_source():
    address = ResourceAddress.parse("module.net.data.aws_vpc.main")

    assert address.mode == "data"
    assert str(address) == "module.net.data.aws_vpc.main"


def test_parse_wildcard_index():
    address = ResourceAddress.parse("aws_lightsail_instance.web[*]")

    assert address.is_wildcard
    assert address.has_index


def test_attribute_suffix_only_with_allow_attribute():
    address = ResourceAddress.parse("azurerm_mssql_server.main.id", allow_attribute=True)
    assert str(address) == "azurerm_mssql_server.main"

    with pytest.raises(AddressParseError):
        ResourceAddress.parse("azurerm_mssql_server.main.id")


@pytest.mark.parametrize("text", [
    "",
    "aws_s3_bucket",
    "module.app",
    "aws_s3_bucket..logs",
    "aws_s3_bucket[0].logs",
    "aws_s3_bucket.logs[abc]",
    "aws_s3_bucket.logs[0",
    'aws_s3_bucket.logs["open]',
    "module.app[*].aws_s3_bucket.logs",
])
def test_invalid_addresses_raise(text):
    with pytest.raises(AddressParseError):
        ResourceAddress.parse(text)


def test_format_index():
    assert format_index(3) == "3"
    assert format_index("eu-west") == '"eu-west"'
    assert format_index('a"b') == '"a\\"b"'

    with pytest.raises(AddressParseError):
        format_index(True)


def test_index_sort_key_orders_numerically():
    indices = ["10", "2", None, '"b"', '"a"']

    ordered = sorted(indices, key=index_sort_key)

    assert ordered == [None, "2", "10", '"a"', '"b"']
