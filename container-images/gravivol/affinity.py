import logging

from models import (
    ClaimRef,
    DerivedLabel,
    Patch,
    PatchAction,
    PatchOp,
    Pod,
    PodAffinityTerm,
)
from labels import LABEL_DOMAIN, derive_label
from exc import PatchConstructionError

LOG = logging.getLogger(__name__)

HOSTNAME_TOPOLOGY_KEY = "kubernetes.io/hostname"
REQUIRED_TERMS = "requiredDuringSchedulingIgnoredDuringExecution"


def json_patch_escape(val):
    return val.replace("~", "~0").replace("/", "~1")


def affinity_term(labels: list[DerivedLabel]) -> dict:
    """Build a pod affinity term that requires all labels on the same node."""

    return {
        "labelSelector": {
            "matchLabels": {label.key: label.value for label in labels},
        },
        "topologyKey": HOSTNAME_TOPOLOGY_KEY,
    }


def has_term(terms: list[PodAffinityTerm], labels: list[DerivedLabel]) -> bool:
    wanted = {label.key: label.value for label in labels}
    for term in terms:
        selector = term.labelSelector
        if (
            term.topologyKey == HOSTNAME_TOPOLOGY_KEY
            and selector is not None
            and selector.matchLabels == wanted
            and not selector.matchExpressions
        ):
            return True

    return False


def label_actions(pod: Pod, labels: list[DerivedLabel]) -> list[PatchAction]:
    current = pod.metadata.labels
    actions = []

    # JSON Patch cannot add a member to an object that does not exist.
    if current is None:
        actions.append(PatchAction(op=PatchOp.ADD, path="/metadata/labels", value={}))
        current = {}

    for label in labels:
        if current.get(label.key) == label.value:
            continue
        actions.append(
            PatchAction(
                op=PatchOp.ADD,
                path=f"/metadata/labels/{json_patch_escape(label.key)}",
                value=label.value,
            )
        )

    return actions


def affinity_actions(pod: Pod, labels: list[DerivedLabel]) -> list[PatchAction]:
    """Merge a new required pod affinity term into the pod.

    Existing terms are preserved. Only the missing part of the
    affinity/podAffinity/required path is created.
    """

    term = affinity_term(labels)
    affinity = pod.spec.affinity

    if affinity is None:
        path = "/spec/affinity"
        value = {"podAffinity": {REQUIRED_TERMS: [term]}}
    elif affinity.podAffinity is None:
        path = "/spec/affinity/podAffinity"
        value = {REQUIRED_TERMS: [term]}
    elif affinity.podAffinity.requiredDuringSchedulingIgnoredDuringExecution is None:
        path = f"/spec/affinity/podAffinity/{REQUIRED_TERMS}"
        value = [term]
    else:
        terms = affinity.podAffinity.requiredDuringSchedulingIgnoredDuringExecution
        if has_term(terms, labels):
            return []
        path = f"/spec/affinity/podAffinity/{REQUIRED_TERMS}/-"
        value = term

    return [PatchAction(op=PatchOp.ADD, path=path, value=value)]


def build_patch(
    pod: Pod, claims: list[ClaimRef], domain: str = LABEL_DOMAIN
) -> Patch:
    if not claims:
        return Patch([])

    namespaces = {claim.namespace for claim in claims}
    if len(namespaces) > 1 or (
        pod.metadata.namespace and pod.metadata.namespace not in namespaces
    ):
        raise PatchConstructionError(
            f"claims {', '.join(map(str, claims))} do not belong to the pod namespace"
        )

    labels = [
        derive_label(claim.namespace, claim.claim_name, domain) for claim in claims
    ]
    patch = Patch(label_actions(pod, labels) + affinity_actions(pod, labels))

    LOG.debug("patch: %s", patch.model_dump_json())
    return patch
