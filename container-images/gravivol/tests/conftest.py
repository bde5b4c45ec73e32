import copy

import pytest

import mutate


CLAIMS = "default/myvol1,foo/myvol2"

POD = {
    "kind": "Pod",
    "apiVersion": "v1",
    "metadata": {
        "generateName": "bla-6b47d48686-",
        "namespace": "default",
        "creationTimestamp": None,
        "labels": {
            "app.kubernetes.io/instance": "bla",
            "app.kubernetes.io/managed-by": "Helm",
            "app.kubernetes.io/name": "bla",
            "app.kubernetes.io/version": "1.16.0",
        },
    },
    "spec": {
        "containers": [{"name": "my-container", "image": "nginx"}],
        "volumes": [
            {"name": "data", "persistentVolumeClaim": {"claimName": "data-vol"}},
            {"name": "config", "configMap": {"name": "bla-config"}},
            {"name": "db", "persistentVolumeClaim": {"claimName": "db-vol"}},
        ],
    },
}


def admission_review(pod, uid="26973DA1-B488-4F59-B062-461C6BDCAD83", **request):
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {
            "uid": uid,
            "kind": {"group": "", "version": "v1", "kind": "Pod"},
            "operation": "CREATE",
            "object": pod,
            **request,
        },
    }


@pytest.fixture()
def pod():
    return copy.deepcopy(POD)


@pytest.fixture()
def app():
    app = mutate.create_app(
        TESTING=True,
        CONFIG="",
    )
    yield app


@pytest.fixture()
def filtered_app():
    app = mutate.create_app(
        TESTING=True,
        CONFIG=CLAIMS,
    )
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def filtered_client(filtered_app):
    return filtered_app.test_client()
