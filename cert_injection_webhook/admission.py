import logging
from typing import Any

import jsonpatch

from .config import Settings
from .errors import ConfigurationError, MutationError, PodDecodeError
from .helpers import bad_request_status, failure_status, make_admission_response
from .matcher import matches_pod
from .models import POD_RESOURCE, AdmissionRequestModel, PodModel
from .mutation import plan
from .patch import make_patch

log = logging.getLogger("cert-injection-webhook")

OS_LABEL = "kubernetes.io/os"


class AdmissionController:
    """
    Decides whether an admitted pod is mutated and computes the patch.

    Holds only the immutable Settings, so one instance can serve any number
    of concurrent requests.
    """

    def __init__(self, settings: Settings) -> None:
        if not settings.label_rules and not settings.annotation_rules:
            raise ConfigurationError("at least one label or annotation required")
        self.settings = settings

    @property
    def path(self) -> str:
        return self.settings.webhook_path

    @property
    def handled_operations(self) -> tuple[str, ...]:
        if self.settings.mutate_on_update:
            return ("CREATE", "UPDATE")
        return ("CREATE",)

    def admit(self, request: AdmissionRequestModel) -> dict[str, Any]:
        if request.resource != POD_RESOURCE:
            log.info("expected resource to be %s, got %s", POD_RESOURCE, request.resource)
            return make_admission_response(True)

        if request.operation not in self.handled_operations:
            log.info("Unhandled webhook operation, letting it through %s", request.operation)
            return make_admission_response(True)

        log.info(
            "Admitting %s %s/%s%s for %s",
            request.operation,
            request.namespace,
            request.name or "<generated>",
            f" ({request.sub_resource})" if request.sub_resource else "",
            request.user_info.get("username", "<unknown>"),
        )

        try:
            pod = PodModel.from_raw(request.obj)
        except PodDecodeError as e:
            reason = f"could not deserialize pod object: {e}"
            log.error(reason)
            return make_admission_response(True, result=bad_request_status(reason))

        if pod.node_selector.get(OS_LABEL) == "windows":
            log.info("Pod %s/%s targets windows nodes, letting it through", pod.namespace, pod.name)
            return make_admission_response(True)

        s = self.settings
        if not matches_pod(s.label_rules, s.annotation_rules, pod.labels, pod.annotations):
            log.info("does not contain matching labels or annotations, letting it through")
            return make_admission_response(True)

        try:
            patch = self.mutate(request, pod)
        except Exception as e:
            reason = f"mutation failed: {e}"
            log.error(reason, exc_info=True)
            return make_admission_response(False, result=failure_status(reason))

        log.info("Kind: %r Patch: %s", request.kind, patch.to_string())
        return make_admission_response(True, patch)

    def mutate(self, request: AdmissionRequestModel, pod: PodModel) -> jsonpatch.JsonPatch:
        """Plan the mutation of ``pod`` and diff it against the admitted object."""
        if request.operation == "UPDATE" and request.old_obj is not None:
            # Only checked for shape; the plan never depends on the old pod.
            try:
                PodModel.from_raw(request.old_obj)
            except PodDecodeError as e:
                raise MutationError(f"cannot decode incoming old object: {e}") from e

        after = plan(pod.raw, self.settings)
        return make_patch(pod.raw, after)
