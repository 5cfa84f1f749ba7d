"""Reconcilers that drive registry discovery, SBOM generation and scanning."""

from __future__ import annotations

import copy
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterator, Protocol, TypeVar

from .meta import GROUP_VERSION, Condition, ConditionStatus, GroupVersionKind, set_status_condition
from .registry_types import (
    REGISTRY_DISCOVERING_CONDITION,
    REGISTRY_DISCOVERY_REQUESTED_REASON,
    REGISTRY_FAILED_TO_REQUEST_DISCOVERY_REASON,
    REGISTRY_LAST_DISCOVERED_AT_ANNOTATION,
    Registry,
)
from .scheme import Scheme, install
from .storage_types import SBOM, STORAGE_GROUP_VERSION, Image, VulnerabilityReport

logger = logging.getLogger(__name__)

T = TypeVar("T")

REGISTRY_FIELD = "spec.imageMetadata.registry"

_GROUP_VERSIONS = {
    Registry.KIND: GROUP_VERSION,
    Image.KIND: STORAGE_GROUP_VERSION,
    SBOM.KIND: STORAGE_GROUP_VERSION,
    VulnerabilityReport.KIND: STORAGE_GROUP_VERSION,
}

_SCHEME = Scheme()
install(_SCHEME)


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""


class ReconcileError(RuntimeError):
    """Raised when a reconciliation cannot be completed."""


@dataclass(frozen=True)
class Request:
    """Identifies the object to reconcile."""

    namespace: str
    name: str


@dataclass(frozen=True)
class Result:
    """Outcome of a successful reconciliation."""

    requeue: bool = False
    requeue_after: float | None = None


@dataclass(frozen=True)
class CreateCatalog:
    """Asks a worker to catalogue the images of a registry."""

    registry_name: str
    registry_namespace: str


@dataclass(frozen=True)
class GenerateSBOM:
    """Asks a worker to generate the SBOM of an image."""

    image_name: str
    image_namespace: str


@dataclass(frozen=True)
class ScanSBOM:
    """Asks a worker to scan an SBOM for vulnerabilities."""

    sbom_name: str
    sbom_namespace: str


class Publisher(Protocol):
    """Sends messages to the workers."""

    def publish(self, message: Any) -> None:
        """Publish a message; raise on failure."""


def _kind_name(kind: Any) -> str:
    return kind if isinstance(kind, str) else kind.KIND


def _field_value(data: dict[str, Any], path: str) -> str:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return ""
        current = current[part]
    return "" if current is None else str(current)


class InMemoryClient:
    """An object store with get, list, create, update and delete operations."""

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str, str], Any] = {}
        self._next_version = 1

    def _bump(self) -> str:
        version = str(self._next_version)
        self._next_version += 1
        return version

    @staticmethod
    def _key(obj: Any) -> tuple[str, str, str]:
        return (type(obj).KIND, obj.metadata.namespace, obj.metadata.name)

    def get(self, kind: type[T], namespace: str, name: str) -> T:
        """Return a copy of the stored object; raise NotFoundError if absent."""
        key = (_kind_name(kind), namespace, name)
        try:
            return copy.deepcopy(self._objects[key])
        except KeyError:
            raise NotFoundError(f"{key[0]} {namespace}/{name} not found") from None

    def list(
        self,
        kind: type[T],
        namespace: str | None = None,
        field_selector: dict[str, str] | None = None,
    ) -> list[T]:
        """Return copies of the objects of a kind, filtered by namespace and fields.

        An empty or missing namespace lists all namespaces. Unsupported field
        selector labels raise FieldSelectorError.
        """
        kind_name = _kind_name(kind)
        selectors = []
        group_version = _GROUP_VERSIONS.get(kind_name)
        for label, value in (field_selector or {}).items():
            gvk = (
                group_version.with_kind(kind_name)
                if group_version is not None
                else GroupVersionKind("", "", kind_name)
            )
            selectors.append(_SCHEME.convert_field_label(gvk, label, value))

        found = []
        for (stored_kind, stored_ns, _), obj in sorted(self._objects.items()):
            if stored_kind != kind_name or (namespace and stored_ns != namespace):
                continue
            data = obj.to_dict()
            if all(_field_value(data, label) == value for label, value in selectors):
                found.append(copy.deepcopy(obj))
        return found

    def create(self, obj: Any) -> None:
        """Store a new object; raise ValueError if it already exists."""
        key = self._key(obj)
        if key in self._objects:
            raise ValueError(f"{key[0]} {key[1]}/{key[2]} already exists")
        if not obj.metadata.uid:
            obj.metadata.uid = str(uuid.uuid4())
        obj.metadata.resource_version = self._bump()
        self._objects[key] = copy.deepcopy(obj)

    def update(self, obj: Any) -> None:
        """Replace an object's metadata and spec, keeping its stored status."""
        key = self._key(obj)
        stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(f"{key[0]} {key[1]}/{key[2]} not found")
        obj.metadata.resource_version = self._bump()
        new = copy.deepcopy(obj)
        if hasattr(stored, "status"):
            new.status = copy.deepcopy(stored.status)
        self._objects[key] = new

    def update_status(self, obj: Any) -> None:
        """Replace only the status of a stored object."""
        if not hasattr(obj, "status"):
            raise TypeError(f"{type(obj).KIND} has no status")
        key = self._key(obj)
        stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(f"{key[0]} {key[1]}/{key[2]} not found")
        obj.metadata.resource_version = self._bump()
        stored.status = copy.deepcopy(obj.status)
        stored.metadata.resource_version = obj.metadata.resource_version

    def delete(self, obj: Any) -> None:
        """Remove an object; raise NotFoundError if it does not exist."""
        key = self._key(obj)
        if self._objects.pop(key, None) is None:
            raise NotFoundError(f"{key[0]} {key[1]}/{key[2]} not found")


@contextmanager
def _wrapped(message: str) -> Iterator[None]:
    try:
        yield
    except ReconcileError:
        raise
    except Exception as err:
        raise ReconcileError(f"{message}: {err}") from err


def _get_or_none(client: Any, kind: type[T], namespace: str, name: str) -> T | None:
    try:
        return client.get(kind, namespace, name)
    except NotFoundError:
        return None
    except Exception as err:
        raise ReconcileError(f"unable to fetch {kind.KIND}: {err}") from err


def _now_rfc3339() -> str:
    return datetime.now().astimezone().replace(microsecond=0).isoformat()


@dataclass
class ImageReconciler:
    """Requests an SBOM for every Image that does not have one yet."""

    client: Any
    publisher: Publisher

    def reconcile(self, request: Request) -> Result:
        image = _get_or_none(self.client, Image, request.namespace, request.name)
        if image is None:
            return Result()

        sbom = _get_or_none(self.client, SBOM, request.namespace, request.name)
        if sbom is None:
            logger.info(
                "Creating SBOM of Image name=%s namespace=%s",
                image.metadata.name,
                image.metadata.namespace,
            )
            message = GenerateSBOM(image.metadata.name, image.metadata.namespace)
            with _wrapped("unable to publish CreateSBOM message"):
                self.publisher.publish(message)
        return Result()


@dataclass
class RegistryReconciler:
    """Starts discovery of new registries and prunes images of dropped repositories."""

    client: Any
    publisher: Publisher

    def reconcile(self, request: Request) -> Result:
        registry = _get_or_none(self.client, Registry, request.namespace, request.name)
        if registry is None:
            return Result()

        if not registry.metadata.annotations.get(REGISTRY_LAST_DISCOVERED_AT_ANNOTATION):
            self._request_discovery(registry)

        if registry.spec.repositories:
            self._prune_images(registry, request.namespace)
        return Result()

    def _request_discovery(self, registry: Registry) -> None:
        logger.info(
            "Registry needs to be discovered, sending the request. name=%s namespace=%s",
            registry.metadata.name,
            registry.metadata.namespace,
        )
        message = CreateCatalog(registry.metadata.name, registry.metadata.namespace)
        try:
            self.publisher.publish(message)
        except Exception as err:
            set_status_condition(
                registry.status.conditions,
                Condition(
                    type=REGISTRY_DISCOVERING_CONDITION,
                    status=ConditionStatus.UNKNOWN,
                    reason=REGISTRY_FAILED_TO_REQUEST_DISCOVERY_REASON,
                    message="Failed to communicate with the workers",
                ),
            )
            with _wrapped("unable to set status condition"):
                self.client.update_status(registry)
            raise ReconcileError(f"failed to publish CreateCatalog message: {err}") from err

        set_status_condition(
            registry.status.conditions,
            Condition(
                type=REGISTRY_DISCOVERING_CONDITION,
                status=ConditionStatus.TRUE,
                reason=REGISTRY_DISCOVERY_REQUESTED_REASON,
                message="Registry discovery in progress",
            ),
        )
        with _wrapped("unable to set status condition"):
            self.client.update_status(registry)

    def _prune_images(self, registry: Registry, namespace: str) -> None:
        logger.debug(
            "Deleting Images that are not in the current list of repositories "
            "name=%s namespace=%s repositories=%s",
            registry.metadata.name,
            registry.metadata.namespace,
            registry.spec.repositories,
        )
        with _wrapped("unable to list Images"):
            images = self.client.list(
                Image, namespace, {REGISTRY_FIELD: registry.metadata.name}
            )

        allowed = set(registry.spec.repositories)
        for image in images:
            repository = image.image_metadata().repository
            if repository in allowed:
                continue
            with _wrapped(f"unable to delete Image {image.metadata.name}"):
                self.client.delete(image)
            logger.debug(
                "Deleted Image name=%s repository=%s", image.metadata.name, repository
            )


@dataclass
class SBOMReconciler:
    """Requests a scan of each SBOM and marks a registry discovered when done."""

    client: Any
    publisher: Publisher
    clock: Callable[[], str] = field(default=_now_rfc3339)

    def reconcile(self, request: Request) -> Result:
        sbom = _get_or_none(self.client, SBOM, request.namespace, request.name)
        if sbom is None:
            return Result()

        message = ScanSBOM(sbom.metadata.name, sbom.metadata.namespace)
        with _wrapped("unable to publish ScanSBOM message"):
            self.publisher.publish(message)

        registry_name = sbom.image_metadata().registry
        selector = {REGISTRY_FIELD: registry_name}
        with _wrapped("unable to list SBOMs"):
            sboms = self.client.list(SBOM, request.namespace, selector)
        with _wrapped("unable to list Images"):
            images = self.client.list(Image, request.namespace, selector)

        if len(sboms) != len(images):
            return Result()

        logger.info(
            "Registry discovery is completed. name=%s namespace=%s",
            registry_name,
            request.namespace,
        )
        with _wrapped("unable to fetch Registry"):
            registry = self.client.get(Registry, request.namespace, registry_name)

        annotations = registry.metadata.annotations
        if REGISTRY_LAST_DISCOVERED_AT_ANNOTATION in annotations:
            logger.debug(
                "Registry already has a last discovered timestamp name=%s namespace=%s",
                registry.metadata.name,
                registry.metadata.namespace,
            )
            return Result()

        logger.debug(
            "Updating Registry last discovered timestamp name=%s namespace=%s",
            registry.metadata.name,
            registry.metadata.namespace,
        )
        annotations[REGISTRY_LAST_DISCOVERED_AT_ANNOTATION] = self.clock()
        with _wrapped("unable to update Registry LastScannedAt"):
            self.client.update(registry)
        return Result()