import copy
import logging
from typing import Any

from kubernetes.utils import parse_quantity

from .certs import CA_CERTS_ENV_PREFIX, fragment_env_name, split
from .config import Settings

log = logging.getLogger("cert-injection-webhook")

CA_CERTS_VOLUME_NAME = "ca-certs"
CA_CERTS_MOUNT_PATH = "/etc/ssl/certs"
SETUP_CA_CERTS_CONTAINER_NAME = "setup-ca-certs"
SETUP_CA_CERTS_WORKING_DIR = "/workspace"


def _containers(spec: dict[str, Any]) -> list[dict[str, Any]]:
    return (spec.get("initContainers") or []) + (spec.get("containers") or [])


def _append(obj: dict[str, Any], key: str, *items: Any) -> None:
    # Treats a missing key and an explicit null the same way
    obj[key] = list(obj.get(key) or []) + list(items)


def set_env_vars(pod: dict[str, Any], settings: Settings) -> None:
    """Append the configured env vars to every existing container."""
    if not settings.env_vars:
        return
    env = [{"name": name, "value": value} for name, value in settings.env_vars]
    for container in _containers(pod.get("spec") or {}):
        _append(container, "env", *copy.deepcopy(env))


def resource_requirements(settings: Settings) -> dict[str, dict[str, str]]:
    """
    Requests/limits for the setup-ca-certs container.

    A value that is not a valid Kubernetes quantity is logged and left out;
    it never fails the admission.
    """
    resources: dict[str, dict[str, str]] = {}
    for section, resource, raw in (
        ("requests", "cpu", settings.init_container_cpu_request),
        ("requests", "memory", settings.init_container_memory_request),
        ("limits", "cpu", settings.init_container_cpu_limit),
        ("limits", "memory", settings.init_container_memory_limit),
    ):
        if raw is None:
            continue
        value = raw.strip()
        try:
            parse_quantity(value)
        except ValueError as e:
            log.warning("Ignoring init container %s %s %r: %s", resource, section, raw, e)
            continue
        resources.setdefault(section, {})[resource] = value
    return resources


def setup_ca_certs_container(settings: Settings) -> dict[str, Any]:
    env = [
        {"name": fragment_env_name(CA_CERTS_ENV_PREFIX, i), "value": cert}
        for i, cert in enumerate(split(settings.ca_certs_data))
    ]
    container: dict[str, Any] = {
        "name": SETUP_CA_CERTS_CONTAINER_NAME,
        "image": settings.setup_ca_certs_image,
        "env": env,
        "imagePullPolicy": "IfNotPresent",
        "workingDir": SETUP_CA_CERTS_WORKING_DIR,
        "volumeMounts": [
            {"name": CA_CERTS_VOLUME_NAME, "mountPath": SETUP_CA_CERTS_WORKING_DIR}
        ],
        "securityContext": {
            "runAsNonRoot": True,
            "allowPrivilegeEscalation": False,
            "privileged": False,
            "seccompProfile": {"type": "RuntimeDefault"},
            "capabilities": {"drop": ["ALL"]},
        },
    }
    resources = resource_requirements(settings)
    if resources:
        container["resources"] = resources
    return container


def set_ca_certs(pod: dict[str, Any], settings: Settings) -> None:
    if not settings.ca_certs_data:
        return
    spec = pod.get("spec") or {}
    pod["spec"] = spec

    _append(spec, "volumes", {"name": CA_CERTS_VOLUME_NAME, "emptyDir": {}})

    mount = {"name": CA_CERTS_VOLUME_NAME, "mountPath": CA_CERTS_MOUNT_PATH, "readOnly": True}
    for container in _containers(spec):
        _append(container, "volumeMounts", dict(mount))

    if settings.system_registry_secret:
        _append(spec, "imagePullSecrets", {"name": settings.system_registry_secret})

    spec["initContainers"] = [setup_ca_certs_container(settings)] + list(
        spec.get("initContainers") or []
    )


def plan(pod: dict[str, Any], settings: Settings) -> dict[str, Any]:
    """Return a mutated deep copy of ``pod``; the argument is left untouched."""
    after = copy.deepcopy(pod)
    set_env_vars(after, settings)
    set_ca_certs(after, settings)
    return after
