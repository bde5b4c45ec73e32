import json
import logging
import os
import sys

import pydantic

from flask import Flask, request, jsonify, current_app, abort

from models import (
    BaseModel,
    ApiVersion,
    AdmissionReview,
    AdmissionResponse,
    AdmissionReviewStatus,
    Operation,
    PatchType,
    Settings,
)

from affinity import build_patch
from claims import match_claims, parse_allow_list, pod_claim_names
from exc import ApplicationError, DecodeError, PatchConstructionError
from labels import LABEL_DOMAIN, is_dns_subdomain

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class DEFAULTS:
    CONFIG = ""
    LABEL_DOMAIN = LABEL_DOMAIN
    TLS_CERT_PATH = "/certs/cert.pem"
    TLS_KEY_PATH = "/certs/key.pem"
    HOST = "::"
    PORT = 8080
    LOG_LEVEL = "INFO"


def jsonresponse():
    """Transforms the response from a view function into a JSON object."""

    def _outer(func):
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            if isinstance(res, BaseModel):
                return jsonify(res.model_dump(exclude_none=True))
            else:
                return jsonify(res)

        return _inner

    return _outer


def allow_only(uid, api_version=ApiVersion.V1, message=None, warning=None):
    """Build a response that admits the object unchanged."""

    return AdmissionReview(
        apiVersion=api_version,
        response=AdmissionResponse(
            uid=uid,
            allowed=True,
            status=AdmissionReviewStatus(message=message) if message else None,
            warnings=[warning] if warning else None,
        ),
    )


def salvage_envelope(data: bytes) -> tuple[str, ApiVersion]:
    """Find the request uid and apiVersion in a body that failed to decode.

    Falls back to an empty uid and admission.k8s.io/v1 for whatever cannot be
    recovered.
    """

    try:
        body = json.loads(data)
    except ValueError:
        return "", ApiVersion.V1

    if not isinstance(body, dict):
        return "", ApiVersion.V1

    try:
        api_version = ApiVersion(body.get("apiVersion"))
    except (ValueError, TypeError):
        api_version = ApiVersion.V1

    req = body.get("request")
    uid = req.get("uid") if isinstance(req, dict) else None

    return (uid if isinstance(uid, str) else ""), api_version


def decode_review(data: bytes) -> AdmissionReview:
    try:
        review = AdmissionReview.model_validate_json(data)
    except pydantic.ValidationError as err:
        raise DecodeError(f"invalid admission review: {err}") from err

    if review.request is None:
        raise DecodeError("admission review contains no request")

    return review


def is_pod(review: AdmissionReview) -> bool:
    req = review.request
    if req.kind is not None and req.kind.kind != "Pod":
        return False
    if req.object.kind is not None and req.object.kind != "Pod":
        return False

    return True


def review_pod(review: AdmissionReview, settings: Settings) -> AdmissionReview:
    req = review.request
    pod = req.object

    if pod is None or not is_pod(review):
        LOG.error("object in request %s is not a pod", req.uid)
        return allow_only(req.uid, review.apiVersion, message="Object is not a pod")

    # Affinity cannot be changed once a pod exists.
    if req.operation != Operation.CREATE:
        LOG.info("ignoring %s operation for request %s", req.operation, req.uid)
        return allow_only(
            req.uid, review.apiVersion, message=f"Ignoring {req.operation} operation"
        )

    namespace = pod.metadata.namespace or req.namespace
    if not namespace:
        raise PatchConstructionError("unable to determine pod namespace")

    claims = match_claims(namespace, pod_claim_names(pod), settings.allow_list)
    patch = build_patch(pod, claims, settings.label_domain)

    # If no claim matched, or the pod already carries everything we would add,
    # return without modifications
    if not patch.root:
        return allow_only(
            req.uid, review.apiVersion, message="No volume claims to co-locate"
        )

    LOG.info(
        "co-locating pod %s in namespace %s by claims %s",
        pod.metadata.name or pod.metadata.generateName,
        namespace,
        ", ".join(claim.claim_name for claim in claims),
    )
    return AdmissionReview(
        apiVersion=review.apiVersion,
        response=AdmissionResponse(
            uid=req.uid,
            allowed=True,
            patchType=PatchType.JSONPatch,
            patch=patch,
        ),
    )


def admit(data: bytes, settings: Settings) -> AdmissionReview:
    """Answer an admission request.

    Pod creation is never blocked: every failure results in a response that
    admits the pod without changes and carries a warning.
    """

    try:
        review = decode_review(data)
    except DecodeError as err:
        LOG.warning("could not decode admission review: %s", err)
        uid, api_version = salvage_envelope(data)
        return allow_only(uid, api_version, warning=str(err))

    uid = review.request.uid
    try:
        return review_pod(review, settings)
    except ApplicationError as err:
        LOG.error("failed to process request %s: %s", uid, err)
        return allow_only(uid, review.apiVersion, warning=str(err))
    except Exception:
        LOG.exception("unexpected error processing request %s", uid)
        return allow_only(
            uid, review.apiVersion, warning="gravivol internal error, pod not mutated"
        )


@jsonresponse()
def mutate_pod():
    if not request.is_json:
        abort(415)

    data = request.get_data()
    LOG.debug("got: %s", data)

    return admit(data, current_app.settings)


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    This makes it much easier to write tests for the application, since we can
    set up the test environment before instantiating the app. This is difficult
    to do if the app is created at `import` time.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("GRAVIVOL")
    if config:
        app.config.update(config)

    label_domain = app.config["LABEL_DOMAIN"]
    if not is_dns_subdomain(label_domain):
        LOG.error("Invalid label domain: %s", label_domain)
        sys.exit(1)

    app.settings = Settings(
        allow_list=parse_allow_list(app.config["CONFIG"]),
        label_domain=label_domain,
    )
    if app.settings.allow_list:
        LOG.info(
            "handling claims: %s",
            ", ".join(sorted(str(claim) for claim in app.settings.allow_list)),
        )
    else:
        LOG.info("handling all claims")

    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule("/health", endpoint="health_legacy", view_func=health)
    app.add_url_rule("/mutate", view_func=mutate_pod, methods=["POST"])

    return app


def main():
    app = create_app()
    logging.getLogger().setLevel(str(app.config["LOG_LEVEL"]).upper())

    cert_path = app.config["TLS_CERT_PATH"]
    key_path = app.config["TLS_KEY_PATH"]
    for path in (cert_path, key_path):
        if not os.access(path, os.R_OK):
            LOG.error("Cannot read TLS material from %s", path)
            sys.exit(1)

    app.run(
        host=app.config["HOST"],
        port=app.config["PORT"],
        ssl_context=(cert_path, key_path),
    )


if __name__ == "__main__":
    main()
