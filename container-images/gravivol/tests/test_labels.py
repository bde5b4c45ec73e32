import pytest

import labels

from exc import InvalidLabelKeyError


def test_derive_label():
    label = labels.derive_label("default", "data-vol")
    assert label.key == "default.gravivol.fonona.net/data-vol"
    assert label.value == "true"


def test_derive_label_custom_domain():
    label = labels.derive_label("default", "data-vol", domain="example.com")
    assert label.key == "default.example.com/data-vol"


def test_derive_label_is_deterministic():
    assert labels.derive_label("ns", "vol") == labels.derive_label("ns", "vol")


def test_distinct_claims_get_distinct_keys():
    keys = {
        labels.derive_label("a", "vol").key,
        labels.derive_label("b", "vol").key,
        labels.derive_label("a", "vol2").key,
    }
    assert len(keys) == 3


def test_longest_valid_claim_name():
    label = labels.derive_label("default", "v" * 63)
    assert label.key.endswith("/" + "v" * 63)


@pytest.mark.parametrize(
    "claim_name",
    [
        "v" * 64,
        "UPPER",
        "-leading-dash",
        "trailing-dot.",
        "has/slash",
        "",
        "new\nline",
    ],
)
def test_invalid_claim_name(claim_name):
    with pytest.raises(InvalidLabelKeyError):
        labels.derive_label("default", claim_name)


def test_invalid_prefix():
    with pytest.raises(InvalidLabelKeyError):
        labels.validate_label_key("Not_A_Domain/name")


def test_missing_prefix():
    with pytest.raises(InvalidLabelKeyError):
        labels.validate_label_key("name")


def test_prefix_too_long():
    with pytest.raises(InvalidLabelKeyError):
        labels.validate_label_key(".".join(c * 63 for c in "abcd") + "/name")


def test_is_dns_subdomain():
    assert labels.is_dns_subdomain("gravivol.fonona.net")
    assert not labels.is_dns_subdomain("gravivol..net")
    assert not labels.is_dns_subdomain("Gravivol.net")
