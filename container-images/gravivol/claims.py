import logging

from models import ClaimRef, Pod

LOG = logging.getLogger(__name__)


def parse_allow_list(value: str | None) -> frozenset[ClaimRef]:
    """Parse a comma separated list of <namespace>/<claim name> entries.

    Malformed entries are logged and skipped. An empty result means that
    every claim should be handled.
    """

    claims = set()
    for entry in (value or "").split(","):
        entry = entry.strip()
        if not entry:
            continue

        namespace, sep, claim_name = entry.partition("/")
        if not (sep and namespace and claim_name) or "/" in claim_name:
            LOG.error(
                "config entry is not in the format <namespace>/<claim name>: %s", entry
            )
            continue

        claims.add(ClaimRef(namespace=namespace, claim_name=claim_name))

    return frozenset(claims)


def pod_claim_names(pod: Pod) -> list[str]:
    return [
        volume.persistentVolumeClaim.claimName
        for volume in pod.spec.volumes or []
        if volume.persistentVolumeClaim is not None
    ]


def match_claims(
    namespace: str, claim_names: list[str], allow_list: frozenset[ClaimRef]
) -> list[ClaimRef]:
    matched = []
    for claim_name in claim_names:
        claim = ClaimRef(namespace=namespace, claim_name=claim_name)

        # A pod may mount the same claim through several volumes.
        if claim in matched:
            continue

        if allow_list and claim not in allow_list:
            continue

        LOG.info("pod uses matching claim %s", claim)
        matched.append(claim)

    return matched
