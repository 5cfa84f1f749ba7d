# sbombastic

Building blocks for keeping track of container registries, the images they
hold, the SBOMs generated for those images and the vulnerability reports
produced from those SBOMs. The package has no dependencies beyond the
standard library.

## Modules

- `sbombastic.meta` – API identity types (`GroupVersion`,
  `GroupVersionKind`, `GroupKind`, `GroupVersionResource`, `GroupResource`),
  `ObjectMeta`, `Condition` with `ConditionStatus`, and the helpers
  `set_status_condition` and `find_status_condition`.
- `sbombastic.registry_types` – `Registry`, `RegistrySpec`,
  `RegistryStatus` and `RegistryList`, plus the annotation, condition and
  reason names used during discovery (for example
  `REGISTRY_LAST_DISCOVERED_AT_ANNOTATION`).
- `sbombastic.storage_types` – `Image`, `SBOM` and `VulnerabilityReport`,
  their specs, list types, `ImageLayer` and the shared `ImageMetadata`.
  Each resource has `image_metadata()`, and converts to and from plain
  dictionaries with `to_dict()` and `from_dict()`.
- `sbombastic.scheme` – `Scheme`, which registers known kinds per group
  version, holds field selector conversions and version priorities; `install`
  registers the whole storage group. Only `metadata.name`,
  `metadata.namespace` and the `spec.imageMetadata.*` fields are selectable
  on images, SBOMs and vulnerability reports; anything else raises
  `FieldSelectorError`.
- `sbombastic.version` – `Version` and `wardle_version_to_kube_version`.
- `sbombastic.controllers` – `RegistryReconciler`, `ImageReconciler` and
  `SBOMReconciler`, the messages they publish (`CreateCatalog`,
  `GenerateSBOM`, `ScanSBOM`), the `Publisher` protocol, and
  `InMemoryClient`, an in-process object store.
- `sbombastic.config` – `parse_controller_flags`, `parse_worker_flags`
  (returning `ControllerConfig` and `WorkerConfig`), `setup_logger` and
  `JsonFormatter`.
- `sbombastic.log_level` – `parse_log_level`.

## Examples

Reconciling a registry:

```python
from sbombastic.controllers import CreateCatalog, InMemoryClient, RegistryReconciler, Request
from sbombastic.meta import ConditionStatus, ObjectMeta, find_status_condition
from sbombastic.registry_types import Registry, RegistrySpec


class ListPublisher:
    def __init__(self):
        self.messages = []

    def publish(self, message):
        self.messages.append(message)


client = InMemoryClient()
client.create(
    Registry(
        metadata=ObjectMeta(name="my-registry", namespace="default"),
        spec=RegistrySpec(uri="ghcr.io/rancher", repositories=["sbombastic"]),
    )
)

publisher = ListPublisher()
RegistryReconciler(client, publisher).reconcile(Request("default", "my-registry"))

assert publisher.messages == [CreateCatalog("my-registry", "default")]
registry = client.get(Registry, "default", "my-registry")
condition = find_status_condition(registry.status.conditions, "Discovering")
assert condition.status is ConditionStatus.TRUE
```

Installing the scheme and checking a field selector:

```python
from sbombastic.scheme import (
    FieldSelectorError,
    Scheme,
    image_metadata_field_selector_conversion,
    install,
)

scheme = Scheme()
install(scheme)

label, value = image_metadata_field_selector_conversion(
    "spec.imageMetadata.registry", "my-registry"
)

try:
    image_metadata_field_selector_conversion("spec.unknown", "x")
except FieldSelectorError as exc:
    print(exc)
```

Mapping a component version onto the Kubernetes version:

```python
from sbombastic.version import Version, wardle_version_to_kube_version

kube = Version.parse("1.31")
mapped = wardle_version_to_kube_version(Version.major_minor(1, 1), kube)  # 1.30
```

Version `1.2` maps onto the given Kubernetes version itself. Lower minors
map onto correspondingly older Kubernetes minors, newer minors are capped at
the given Kubernetes version, and major versions other than 1 map to `None`.
Without a Kubernetes version, 1.32 is used.

Parsing settings and logging:

```python
from sbombastic.config import parse_worker_flags, setup_logger

config = parse_worker_flags(["--nats-url", "nats:4222", "--log-level", "debug"])
logger = setup_logger(config.log_level, "worker")
logger.info("Starting worker")
```

Log levels are `DEBUG`, `INFO`, `WARN` and `ERROR` in any case, optionally
with an offset such as `INFO+2`; anything else raises `ValueError`. The logger
writes one JSON object per line to standard output with `time`, `level`,
`msg`, `component` and any `extra` fields.

Flags may be written with one or two dashes. Boolean flags (`leader-elect`,
`metrics-secure`, `enable-http2`) accept a bare flag or an explicit value
such as `--metrics-secure=false`. Controller defaults: metrics address `0`,
probe address `:8081`, leader election off, secure metrics on, HTTP/2 off,
level `INFO`. Worker defaults: NATS URL `localhost:4222`, run directory
`/var/run/worker`, level `INFO`.

## How reconciliation works

- **Registry** – when a registry has no
  `sbombastic.rancher.io/last-discovered-at` annotation, a `CreateCatalog`
  message is published and the registry's `Discovering` condition is set to
  `True`. If publishing fails, the condition is set to `Unknown` and a
  `ReconcileError` is raised. When the registry lists repositories, its images
  outside those repositories are deleted.
- **Image** – when no SBOM of the same name and namespace exists, a
  `GenerateSBOM` message is published.
- **SBOM** – every SBOM triggers a `ScanSBOM` message. When the number of
  SBOMs of a registry equals the number of its images, the registry is
  stamped with the last-discovered-at annotation unless it already has one.

A missing object ends a reconciliation quietly; other failures are raised as
`ReconcileError`.

## What the package does not do

There are no commands, no API server, no database storage and no message
broker connection. Reconcilers run only when `reconcile` is called; the
caller supplies the `Publisher` that delivers messages and a client such as
`InMemoryClient` that holds the objects. Nothing here catalogues registries,
generates SBOMs or scans them for vulnerabilities: the package only decides
which of those requests to send.