import re

from models import DerivedLabel
from exc import InvalidLabelKeyError

LABEL_DOMAIN = "gravivol.fonona.net"
LABEL_VALUE = "true"

# https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/#syntax-and-character-set
MAX_PREFIX_LENGTH = 253
MAX_NAME_LENGTH = 63

DNS_SUBDOMAIN_RE = re.compile(
    r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*"
)
LABEL_NAME_RE = re.compile(r"[a-z0-9]([-a-z0-9_.]*[a-z0-9])?")


def is_dns_subdomain(val: str) -> bool:
    if len(val) > MAX_PREFIX_LENGTH:
        return False
    return DNS_SUBDOMAIN_RE.fullmatch(val) is not None


def validate_label_key(key: str) -> str:
    """Check that key is a legal prefixed label key.

    Claim names are DNS subdomains, so unlike the general label grammar the
    name part must also be lowercase.
    """

    prefix, sep, name = key.partition("/")
    if not sep:
        raise InvalidLabelKeyError(f"label key {key!r} has no prefix")
    if not is_dns_subdomain(prefix):
        raise InvalidLabelKeyError(f"label key {key!r} has an invalid prefix")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidLabelKeyError(
            f"label key {key!r} is longer than {MAX_NAME_LENGTH} characters"
        )
    if not LABEL_NAME_RE.fullmatch(name):
        raise InvalidLabelKeyError(f"label key {key!r} has an invalid name")

    return key


def derive_label(
    namespace: str, claim_name: str, domain: str = LABEL_DOMAIN
) -> DerivedLabel:
    key = validate_label_key(f"{namespace}.{domain}/{claim_name}")
    return DerivedLabel(key=key, value=LABEL_VALUE)
