"""
Exceptions raised by the webhook.

Admission-path errors are turned into AdmissionResponse values by the
admission controller; reconcile errors propagate to the reconcile worker,
which logs them and retries with backoff.
"""


class CertInjectionError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(CertInjectionError):
    """Static configuration cannot be used (e.g. no match rules at all)."""


class PodDecodeError(CertInjectionError):
    """The admitted object is not a well-formed core/v1 Pod."""


class MutationError(CertInjectionError):
    """Planning or diffing a pod mutation failed."""


class CertificateError(CertInjectionError):
    """A CA certificate fragment is not a valid PEM block."""


class ReconcileError(CertInjectionError):
    """A reconcile attempt failed and should be retried."""
