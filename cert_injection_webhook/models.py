"""
Models for Kubernetes AdmissionReview and Pod used by this webhook.

The AdmissionReview envelope is parsed leniently: only the fields we need are
read and unknown fields are ignored so that new Kubernetes fields don't break
this app. The admitted Pod is decoded strictly, because a patch computed
against a wrongly-shaped object would not apply.

References:
- AdmissionReview request/response shape:
  https://kubernetes.io/docs/reference/access-authn-authz/extensible-admission-controllers/#request-and-response
- Pod (core/v1) API reference:
  https://kubernetes.io/docs/reference/generated/kubernetes-api/latest/#pod-v1-core
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import PodDecodeError

POD_API_VERSION = "v1"
POD_KIND = "Pod"


@dataclass(frozen=True)
class GroupVersionResource:
    group: str = ""
    version: str = ""
    resource: str = ""

    @staticmethod
    def from_dict(d: Any) -> "GroupVersionResource":
        if not isinstance(d, dict):
            return GroupVersionResource()
        return GroupVersionResource(
            group=str(d.get("group") or ""),
            version=str(d.get("version") or ""),
            resource=str(d.get("resource") or ""),
        )

    def __str__(self) -> str:
        return f"{self.group or 'core'}/{self.version}, Resource={self.resource}"


POD_RESOURCE = GroupVersionResource(group="", version="v1", resource="pods")


def _check_mapping(value: Any, where: str, string_values: bool = False) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PodDecodeError(f"{where}: expected object, got {type(value).__name__}")
    if string_values:
        for k, v in value.items():
            if not isinstance(v, str):
                raise PodDecodeError(f"{where}.{k}: expected string, got {type(v).__name__}")
    return value


def _check_list(value: Any, where: str, of_objects: bool = True) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PodDecodeError(f"{where}: expected array, got {type(value).__name__}")
    if of_objects:
        for i, item in enumerate(value):
            if not isinstance(item, dict):
                raise PodDecodeError(f"{where}[{i}]: expected object, got {type(item).__name__}")
    return value


def _check_containers(spec: dict, key: str) -> None:
    for i, container in enumerate(_check_list(spec.get(key), f"spec.{key}")):
        where = f"spec.{key}[{i}]"
        _check_list(container.get("env"), f"{where}.env")
        _check_list(container.get("volumeMounts"), f"{where}.volumeMounts")


@dataclass
class PodModel:
    name: str
    namespace: str
    labels: dict[str, str]
    annotations: dict[str, str]
    node_selector: dict[str, str]
    raw: dict[str, Any] = field(repr=False, default_factory=dict)

    @staticmethod
    def from_raw(raw: Any) -> "PodModel":
        """
        Decode a core/v1 Pod from the AdmissionReview ``object`` field.

        Accepts the already-parsed JSON object or its serialized bytes/str.
        Raises PodDecodeError when the object is not Pod-shaped.
        """
        if isinstance(raw, (bytes, bytearray, str)):
            try:
                raw = json.loads(raw)
            except (ValueError, UnicodeDecodeError) as e:
                raise PodDecodeError(f"invalid JSON: {e}") from e
        return PodModel.from_dict(raw)

    @staticmethod
    def from_dict(d: Any) -> "PodModel":
        if not isinstance(d, dict):
            raise PodDecodeError(f"expected object, got {type(d).__name__}")

        api_version = d.get("apiVersion")
        if api_version not in (None, "", POD_API_VERSION):
            raise PodDecodeError(f"unexpected apiVersion {api_version!r}")
        kind = d.get("kind")
        if kind not in (None, "", POD_KIND):
            raise PodDecodeError(f"unexpected kind {kind!r}")

        meta = _check_mapping(d.get("metadata"), "metadata")
        labels = _check_mapping(meta.get("labels"), "metadata.labels", string_values=True)
        annotations = _check_mapping(
            meta.get("annotations"), "metadata.annotations", string_values=True
        )

        spec = _check_mapping(d.get("spec"), "spec")
        node_selector = _check_mapping(
            spec.get("nodeSelector"), "spec.nodeSelector", string_values=True
        )
        _check_containers(spec, "containers")
        _check_containers(spec, "initContainers")
        _check_list(spec.get("volumes"), "spec.volumes")
        _check_list(spec.get("imagePullSecrets"), "spec.imagePullSecrets")

        return PodModel(
            name=str(meta.get("name") or ""),
            namespace=str(meta.get("namespace") or ""),
            labels=labels,
            annotations=annotations,
            node_selector=node_selector,
            raw=d,
        )


@dataclass(frozen=True)
class AdmissionRequestModel:
    uid: str
    resource: GroupVersionResource
    operation: str = "CREATE"
    kind: str = ""
    sub_resource: str = ""
    namespace: str = ""
    name: str = ""
    obj: Any = None
    old_obj: Any = None
    user_info: dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionRequestModel"]:
        if not isinstance(d, dict):
            return None
        kind = d.get("kind")
        user_info = d.get("userInfo")
        return AdmissionRequestModel(
            uid=str(d.get("uid", "")),
            resource=GroupVersionResource.from_dict(d.get("resource")),
            operation=str(d.get("operation", "CREATE")).upper(),
            kind=str(kind.get("kind", "")) if isinstance(kind, dict) else "",
            sub_resource=str(d.get("subResource") or ""),
            namespace=str(d.get("namespace") or ""),
            name=str(d.get("name") or ""),
            obj=d.get("object"),
            old_obj=d.get("oldObject"),
            user_info=user_info if isinstance(user_info, dict) else {},
        )


@dataclass(frozen=True)
class AdmissionReviewModel:
    request: AdmissionRequestModel
    api_version: str = "admission.k8s.io/v1"

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Optional["AdmissionReviewModel"]:
        if not isinstance(d, dict):
            return None
        req_raw = d.get("request")
        req = (
            AdmissionRequestModel.from_dict(req_raw)
            if isinstance(req_raw, dict)
            else None
        )
        if req is None:
            return None
        return AdmissionReviewModel(
            request=req,
            api_version=str(d.get("apiVersion") or "admission.k8s.io/v1"),
        )
