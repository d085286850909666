import base64
from typing import Any

import jsonpatch

ADMISSION_API_VERSION = "admission.k8s.io/v1"


def bad_request_status(reason: str) -> dict[str, Any]:
    """metav1.Status for an object the webhook could not understand."""
    return {
        "status": "Failure",
        "message": reason,
        "reason": "BadRequest",
        "code": 400,
    }


def failure_status(reason: str) -> dict[str, Any]:
    return {"status": "Failure", "message": reason}


def make_admission_response(
    allowed: bool = True,
    patch: jsonpatch.JsonPatch | None = None,
    result: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the AdmissionResponse body; an empty patch is left out entirely."""
    resp: dict[str, Any] = {"allowed": allowed}

    if patch is not None and patch.patch:
        resp["patchType"] = "JSONPatch"
        resp["patch"] = base64.b64encode(patch.to_string().encode()).decode()

    if result is not None:
        resp["status"] = result

    return resp


def make_admission_review(
    uid: str, response: dict[str, Any], api_version: str = ADMISSION_API_VERSION
) -> dict[str, Any]:
    """Return the AdmissionReview the webhook sends back to the API server."""
    return {
        "apiVersion": api_version,
        "kind": "AdmissionReview",
        "response": {"uid": uid, **response},
    }
