import uuid
from datetime import datetime

import pytest

from sbombastic.controllers import (
    CreateCatalog,
    GenerateSBOM,
    ImageReconciler,
    InMemoryClient,
    NotFoundError,
    ReconcileError,
    RegistryReconciler,
    Request,
    Result,
    SBOMReconciler,
    ScanSBOM,
)
from sbombastic.meta import ConditionStatus, ObjectMeta, find_status_condition
from sbombastic.registry_types import (
    REGISTRY_DISCOVERY_REQUESTED_REASON,
    REGISTRY_FAILED_TO_REQUEST_DISCOVERY_REASON,
    REGISTRY_LAST_DISCOVERED_AT_ANNOTATION,
    REGISTRY_LAST_SCANNED_AT_ANNOTATION,
    Registry,
    RegistrySpec,
)
from sbombastic.scheme import FieldSelectorError
from sbombastic.storage_types import SBOM, Image, ImageMetadata, ImageSpec, SBOMSpec


class RecordingPublisher:
    def __init__(self, error=None):
        self.messages = []
        self.error = error

    def publish(self, message):
        self.messages.append(message)
        if self.error is not None:
            raise self.error


def _name():
    return str(uuid.uuid4())


def _meta(name=None, annotations=None):
    return ObjectMeta(name=name or _name(), namespace="default", annotations=annotations or {})


def _image(registry_name, repository, digest="sha256:123"):
    return Image(
        metadata=_meta(),
        spec=ImageSpec(
            image_metadata=ImageMetadata(
                registry=registry_name,
                repository=repository,
                tag="latest",
                digest=digest,
                platform="linux/amd64",
            )
        ),
    )


def _request(obj):
    return Request(namespace=obj.metadata.namespace, name=obj.metadata.name)


@pytest.fixture
def client():
    return InMemoryClient()


# Image controller


def test_image_without_sbom_requests_generation(client):
    image = Image(metadata=_meta())
    client.create(image)
    publisher = RecordingPublisher()

    result = ImageReconciler(client, publisher).reconcile(_request(image))

    assert result == Result()
    assert publisher.messages == [GenerateSBOM(image.metadata.name, "default")]


def test_image_with_sbom_publishes_nothing(client):
    image = Image(metadata=_meta())
    client.create(image)
    client.create(SBOM(metadata=_meta(image.metadata.name)))
    publisher = RecordingPublisher()

    ImageReconciler(client, publisher).reconcile(_request(image))

    assert publisher.messages == []


def test_missing_image_is_ignored(client):
    publisher = RecordingPublisher()
    result = ImageReconciler(client, publisher).reconcile(Request("default", "absent"))
    assert result == Result()
    assert publisher.messages == []


def test_image_publish_failure_raises(client):
    image = Image(metadata=_meta())
    client.create(image)
    publisher = RecordingPublisher(error=RuntimeError("down"))
    with pytest.raises(ReconcileError, match="unable to publish CreateSBOM message: down"):
        ImageReconciler(client, publisher).reconcile(_request(image))


# Registry controller


@pytest.fixture
def new_registry(client):
    registry = Registry(
        metadata=_meta(),
        spec=RegistrySpec(uri="ghcr.io/rancher", repositories=["sbombastic"]),
    )
    client.create(registry)
    return registry


def test_registry_discovery_is_started(client, new_registry):
    publisher = RecordingPublisher()

    RegistryReconciler(client, publisher).reconcile(_request(new_registry))

    assert publisher.messages == [CreateCatalog(new_registry.metadata.name, "default")]
    stored = client.get(Registry, "default", new_registry.metadata.name)
    condition = find_status_condition(stored.status.conditions, "Discovering")
    assert (condition.status, condition.reason, condition.message) == (
        ConditionStatus.TRUE,
        REGISTRY_DISCOVERY_REQUESTED_REASON,
        "Registry discovery in progress",
    )


def test_registry_publish_failure_sets_unknown_condition(client, new_registry):
    publisher = RecordingPublisher(error=RuntimeError("failed to publish message"))

    with pytest.raises(ReconcileError, match="failed to publish CreateCatalog message"):
        RegistryReconciler(client, publisher).reconcile(_request(new_registry))

    stored = client.get(Registry, "default", new_registry.metadata.name)
    condition = find_status_condition(stored.status.conditions, "Discovering")
    assert (condition.status, condition.reason, condition.message) == (
        ConditionStatus.UNKNOWN,
        REGISTRY_FAILED_TO_REQUEST_DISCOVERY_REASON,
        "Failed to communicate with the workers",
    )


def test_missing_registry_is_ignored(client):
    publisher = RecordingPublisher()
    result = RegistryReconciler(client, publisher).reconcile(Request("default", "absent"))
    assert result == Result()
    assert publisher.messages == []


def test_updated_repositories_delete_stale_images(client):
    now = datetime.now().isoformat()
    registry = Registry(
        metadata=_meta(
            annotations={
                REGISTRY_LAST_DISCOVERED_AT_ANNOTATION: now,
                REGISTRY_LAST_SCANNED_AT_ANNOTATION: now,
            }
        ),
        spec=RegistrySpec(
            uri="ghcr.io/rancher", repositories=["sbombastic-dev", "sbombastic-prod"]
        ),
    )
    client.create(registry)
    client.create(_image(registry.metadata.name, "sbombastic-dev", "sha256:123"))
    client.create(_image(registry.metadata.name, "sbombastic-prod", "sha256:234"))

    registry.spec.repositories = ["sbombastic-prod"]
    client.update(registry)
    publisher = RecordingPublisher()

    RegistryReconciler(client, publisher).reconcile(_request(registry))

    images = client.list(
        Image, "default", {"spec.imageMetadata.registry": registry.metadata.name}
    )
    assert [i.image_metadata().repository for i in images] == ["sbombastic-prod"]
    assert publisher.messages == []


# SBOM controller


@pytest.fixture
def discovered_setup(client):
    registry = Registry(
        metadata=_meta(),
        spec=RegistrySpec(uri="ghcr.io/rancher", repositories=["sbombastic"]),
    )
    client.create(registry)
    metadata = ImageMetadata(
        registry=registry.metadata.name,
        repository="sbombastic",
        tag="latest",
        platform="linux/amd64",
        digest="sha:123",
    )
    client.create(Image(metadata=_meta(), spec=ImageSpec(image_metadata=metadata)))
    sbom = SBOM(metadata=_meta(), spec=SBOMSpec(image_metadata=metadata, spdx={}))
    client.create(sbom)
    return registry, sbom


def test_sbom_reconcile_marks_registry_discovered(client, discovered_setup):
    registry, sbom = discovered_setup
    publisher = RecordingPublisher()

    SBOMReconciler(client, publisher).reconcile(_request(sbom))

    assert publisher.messages == [ScanSBOM(sbom.metadata.name, "default")]
    stored = client.get(Registry, "default", registry.metadata.name)
    stamp = stored.metadata.annotations[REGISTRY_LAST_DISCOVERED_AT_ANNOTATION]
    assert datetime.fromisoformat(stamp).tzinfo is not None


def test_sbom_reconcile_uses_clock(client, discovered_setup):
    registry, sbom = discovered_setup
    reconciler = SBOMReconciler(
        client, RecordingPublisher(), clock=lambda: "2024-01-02T03:04:05Z"
    )
    reconciler.reconcile(_request(sbom))
    stored = client.get(Registry, "default", registry.metadata.name)
    assert stored.metadata.annotations == {
        REGISTRY_LAST_DISCOVERED_AT_ANNOTATION: "2024-01-02T03:04:05Z"
    }


def test_sbom_reconcile_waits_for_all_images(client, discovered_setup):
    registry, sbom = discovered_setup
    client.create(_image(registry.metadata.name, "sbombastic", "sha:456"))

    SBOMReconciler(client, RecordingPublisher()).reconcile(_request(sbom))

    stored = client.get(Registry, "default", registry.metadata.name)
    assert REGISTRY_LAST_DISCOVERED_AT_ANNOTATION not in stored.metadata.annotations


def test_sbom_reconcile_keeps_existing_timestamp(client, discovered_setup):
    registry, sbom = discovered_setup
    registry.metadata.annotations[REGISTRY_LAST_DISCOVERED_AT_ANNOTATION] = "earlier"
    client.update(registry)

    SBOMReconciler(client, RecordingPublisher()).reconcile(_request(sbom))

    stored = client.get(Registry, "default", registry.metadata.name)
    assert stored.metadata.annotations[REGISTRY_LAST_DISCOVERED_AT_ANNOTATION] == "earlier"


def test_sbom_reconcile_missing_registry_raises(client, discovered_setup):
    registry, sbom = discovered_setup
    client.delete(registry)
    with pytest.raises(ReconcileError, match="unable to fetch Registry"):
        SBOMReconciler(client, RecordingPublisher()).reconcile(_request(sbom))


def test_missing_sbom_is_ignored(client):
    publisher = RecordingPublisher()
    result = SBOMReconciler(client, publisher).reconcile(Request("default", "absent"))
    assert result == Result()
    assert publisher.messages == []


def test_sbom_publish_failure_raises(client, discovered_setup):
    _, sbom = discovered_setup
    publisher = RecordingPublisher(error=RuntimeError("down"))
    with pytest.raises(ReconcileError, match="unable to publish ScanSBOM message"):
        SBOMReconciler(client, publisher).reconcile(_request(sbom))


# In-memory client


def test_get_missing_raises_not_found(client):
    with pytest.raises(NotFoundError):
        client.get(Image, "default", "absent")


def test_create_duplicate_raises(client):
    image = Image(metadata=_meta())
    client.create(image)
    with pytest.raises(ValueError, match="already exists"):
        client.create(Image(metadata=_meta(image.metadata.name)))


def test_delete_missing_raises_not_found(client):
    with pytest.raises(NotFoundError):
        client.delete(Image(metadata=_meta()))


def test_list_rejects_unknown_field_selector(client):
    with pytest.raises(FieldSelectorError):
        client.list(Image, "default", {"spec.unknown": "x"})


def test_list_filters_by_namespace(client):
    client.create(Image(metadata=ObjectMeta(name="a", namespace="one")))
    client.create(Image(metadata=ObjectMeta(name="b", namespace="two")))
    assert [i.metadata.name for i in client.list(Image, "two")] == ["b"]
    assert [i.metadata.name for i in client.list(Image)] == ["a", "b"]


def test_update_keeps_status_and_update_status_keeps_spec(client, new_registry):
    RegistryReconciler(client, RecordingPublisher()).reconcile(_request(new_registry))

    stale = client.get(Registry, "default", new_registry.metadata.name)
    stale.status.conditions.clear()
    stale.spec.uri = "example.com/other"
    client.update(stale)

    stored = client.get(Registry, "default", new_registry.metadata.name)
    assert stored.spec.uri == "example.com/other"
    assert len(stored.status.conditions) == 1

    stored.spec.uri = "ignored"
    stored.status.conditions.clear()
    client.update_status(stored)
    again = client.get(Registry, "default", new_registry.metadata.name)
    assert again.spec.uri == "example.com/other"
    assert again.status.conditions == []


def test_get_returns_independent_copy(client):
    image = Image(metadata=_meta())
    client.create(image)
    fetched = client.get(Image, "default", image.metadata.name)
    fetched.spec.image_metadata.repository = "changed"
    assert client.get(Image, "default", image.metadata.name).spec.image_metadata.repository == ""