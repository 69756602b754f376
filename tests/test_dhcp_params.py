import ipaddress

import pytest

from vmwnet.dhcp_params import (
    Address4Parameter,
    Address6Parameter,
    BooleanParameter,
    ClientMatchParameter,
    ExpressionParameter,
    GrantParameter,
    HardwareParameter,
    IncludeParameter,
    OptionParameter,
    OtherParameter,
    Prefix6Parameter,
    Range4Parameter,
    Range6Parameter,
    TokenGroup,
    TokenParameter,
    parse_dhcp_config,
    parse_parameter,
    parse_token_parameter,
)
from vmwnet.lexing import ParseError, tokenize_dhcp_config, uncomment


def terminated(tokens):
    return [*tokens, ";"]


def param(name, *operands):
    return parse_parameter(TokenParameter(name=name, operand=list(operands)))


# --- parse_token_parameter -------------------------------------------------


def test_token_parameter_two_operands():
    result = parse_token_parameter(terminated(["option", "whee", "whooo"]))
    assert result.name == "option"
    assert result.operand == ["whee", "whooo"]


def test_token_parameter_stops_at_semicolon():
    result = parse_token_parameter(terminated(["whaaa", "whoaaa", ";", "wooops"]))
    assert result.name == "whaaa"
    assert result.operand == ["whoaaa"]


def test_token_parameter_stops_at_brace():
    result = parse_token_parameter(terminated(["optionz", "only", "{", "culled"]))
    assert result.name == "optionz"
    assert result.operand == ["only"]


def test_token_parameter_describe():
    assert TokenParameter("item", ["1234", "5678"]).describe() == "item [1234,5678]"


# --- parse_dhcp_config -----------------------------------------------------


def test_dhcp_config_flat_parameters():
    tokens = [
        "allow", "unused-option", ";",
        "lease-option", "1234", ";",
        "more", "options", "hi", ";",
    ]
    result = parse_dhcp_config(terminated(tokens))
    assert len(result.params) == 4
    assert result.params[0].name == "allow"
    assert result.params[0].operand == ["unused-option"]
    assert result.params[1].name == "lease-option"
    assert result.params[1].operand == ["1234"]
    assert result.params[2].name == "more"
    assert result.params[2].operand == ["options", "hi"]


def test_dhcp_config_nested_groups():
    tokens = [
        "first-option", ";",
        "child", "group", "{",
        "blah", ";",
        "meh", ";",
        "}",
        "hidden", "option", "57005", ";",
        "host", "device", "two", "{",
        "skipped", "option", ";",
        "more", "skipped", "options", ";",
        "}",
        "last", "option", "but", "unterminated",
    ]
    result = parse_dhcp_config(terminated(tokens))
    assert len(result.groups) == 2
    assert len(result.params) == 3

    group0 = result.groups[0]
    assert group0.id.name == "child"
    assert group0.id.operand == ["group"]
    assert len(group0.params) == 2
    assert group0.parent is result

    group1 = result.groups[1]
    assert group1.id.name == "host"
    assert group1.id.operand == ["device", "two"]
    assert len(group1.params) == 2


def test_dhcp_config_rejects_closing_global():
    with pytest.raises(ParseError, match="global declaration"):
        parse_dhcp_config(["a", ";", "}"])


def test_dhcp_config_rejects_unterminated_tokens_in_group():
    with pytest.raises(ParseError, match="unterminated"):
        parse_dhcp_config(["pool", "{", "dangling", "}"])


def test_dhcp_config_from_text():
    text = (
        "subnet 127.0.0.0 netmask 255.255.255.252 {\n"
        "    item 1234 5678;  # comment\n"
        '    quoted item-2 "hola mundo.";\n'
        "}\n"
    )
    root = parse_dhcp_config(tokenize_dhcp_config(uncomment(text)))
    assert root.params == []
    assert len(root.groups) == 1
    group = root.groups[0]
    assert group.id == TokenParameter(
        "subnet", ["127.0.0.0", "netmask", "255.255.255.252"]
    )
    assert group.describe() == (
        "subnet 127.0.0.0 netmask 255.255.255.252 {\n"
        "item [1234,5678]\n"
        'quoted [item-2,"hola mundo."]\n'
        "}"
    )


def test_token_group_describe_empty():
    assert TokenGroup(id=TokenParameter("pool", [])).describe() == "pool {\n\n}"


# --- parse_parameter -------------------------------------------------------


def test_include():
    result = param("include", "file.conf", "extra")
    assert result == IncludeParameter(filename="file.conf")
    assert result.describe() == "include-file:filename=file.conf"


def test_include_wrong_count():
    with pytest.raises(ParseError):
        param("include", "file.conf")


def test_option():
    result = param("option", "routers", "172.33.33.2")
    assert result == OptionParameter(name="routers", value="172.33.33.2")
    assert result.describe() == "option:routers=172.33.33.2"


def test_option_wrong_count():
    with pytest.raises(ParseError):
        param("option", "routers")


@pytest.mark.parametrize("verb", ["allow", "deny", "ignore"])
def test_grant(verb):
    result = param(verb, "unknown", "clients")
    assert result == GrantParameter(verb=verb, attribute="unknown clients")
    assert result.describe() == f"grant:{verb},unknown clients"


def test_grant_requires_operand():
    with pytest.raises(ParseError):
        param("deny")


def test_range4_pair():
    result = param("range", "172.33.33.128", "172.33.33.254")
    assert isinstance(result, Range4Parameter)
    assert result.describe() == "range4:172.33.33.128-172.33.33.254"


def test_range4_bootp():
    result = param("range", "bootp", "10.0.0.1", "10.0.0.9")
    assert result.describe() == "range4:10.0.0.1-10.0.0.9"


def test_range4_single_address():
    result = param("range", "10.0.0.5")
    assert result.min == result.max == ipaddress.ip_address("10.0.0.5")


def test_range4_too_many():
    with pytest.raises(ParseError):
        param("range", "10.0.0.1", "10.0.0.2", "10.0.0.3")


def test_range4_invalid_address_prints_nil():
    assert param("range", "bogus", "10.0.0.2").describe() == "range4:<nil>-10.0.0.2"


def test_range6_pair_and_temporary():
    assert param("range6", "2001:db8::1", "2001:db8::9").describe() == (
        "range6:2001:db8::1-2001:db8::9"
    )
    assert param("range6", "2001:db8::1", "temporary").describe() == (
        "range6:2001:db8::1-2001:db8::1"
    )


def test_range6_single():
    assert param("range6", "2001:db8::5").describe() == "range6:2001:db8::5-2001:db8::5"


def test_range6_cidr():
    result = param("range6", "2001:db8::/64")
    assert isinstance(result, Range6Parameter)
    assert result.describe() == "range6:2001:db8::-2001:db8::ffff:ffff:ffff:ffff"


def test_range6_cidr_bad_prefix():
    with pytest.raises(ParseError):
        param("range6", "2001:db8::/abc")


def test_range6_wrong_count():
    with pytest.raises(ParseError):
        param("range6", "a", "b", "c")


def test_prefix6():
    result = param("prefix6", "2001:db8::", "2001:db8:0:ff::", "56")
    assert result == Prefix6Parameter(
        min=ipaddress.ip_address("2001:db8::"),
        max=ipaddress.ip_address("2001:db8:0:ff::"),
        bits=56,
    )
    assert result.describe() == "prefix6:/56:2001:db8::-2001:db8:0:ff::"


def test_prefix6_bad_bits():
    with pytest.raises(ParseError, match="invalid bits"):
        param("prefix6", "2001:db8::", "2001:db8::", "x")


def test_hardware():
    result = param("hardware", "ethernet", "0a:00:00:00:00:01")
    assert result == HardwareParameter(
        hardware_class="ethernet", address=bytes([10, 0, 0, 0, 0, 1])
    )
    assert result.describe() == "hardware-address:ethernet[0a:00:00:00:00:01]"


def test_hardware_short_octets_accepted():
    result = param("hardware", "ethernet", "a:0:0:0:0:1")
    assert result.address == bytes([10, 0, 0, 0, 0, 1])


@pytest.mark.parametrize("mac", ["0a:00:00:00:01", "zz:00:00:00:00:01", "100:0:0:0:0:1"])
def test_hardware_invalid(mac):
    with pytest.raises(ParseError):
        param("hardware", "ethernet", mac)


def test_fixed_addresses():
    four = param("fixed-address", "172.33.33.1", "172.33.33.2")
    assert four == Address4Parameter(addresses=("172.33.33.1", "172.33.33.2"))
    assert four.describe() == "fixed-address4:172.33.33.1,172.33.33.2"
    six = param("fixed-address6", "2001:db8::1")
    assert six == Address6Parameter(addresses=("2001:db8::1",))
    assert six.describe() == "fixed-address6:2001:db8::1"


def test_host_identifier():
    result = param("host-identifier", "option", "client-id", "abc")
    assert result == ClientMatchParameter(name="client-id", data="abc")
    assert result.describe() == "match-client:client-id=abc"


def test_host_identifier_requires_option():
    with pytest.raises(ParseError, match="invalid match parameter"):
        param("host-identifier", "other", "client-id", "abc")


def test_boolean_true_and_not():
    assert param("authoritative") == BooleanParameter("authoritative", True)
    negated = param("not", "authoritative")
    assert negated == BooleanParameter("authoritative", False)
    assert negated.describe() == "boolean:authoritative=false"
    assert param("authoritative").describe() == "boolean:authoritative=true"


def test_expression():
    result = param("ddns-hostname", "=", "concat", "(", "x", ")")
    assert result == ExpressionParameter("ddns-hostname", "concat(x)")
    assert result.describe() == 'parameter-expression:ddns-hostname="concat(x)"'


def test_other():
    result = param("default-lease-time", "1800")
    assert result == OtherParameter("default-lease-time", "1800")
    assert result.describe() == "parameter:default-lease-time=1800"


def test_other_too_many_operands():
    with pytest.raises(ParseError, match="pParameterOther"):
        param("something", "a", "b")