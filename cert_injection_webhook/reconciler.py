"""
Keeps the MutatingWebhookConfiguration trusting the webhook's serving CA.

The webhook's TLS secret holds ``ca.crt``; the reconciler copies it into
``clientConfig.caBundle`` of the hook entry named like the configuration and
points ``clientConfig.service.path`` at the served path. The configuration
itself is created out-of-band and never deleted here.
"""

import copy
import logging
import random
import threading
from typing import Any

from kubernetes.client.exceptions import ApiException

from .errors import ReconcileError

log = logging.getLogger("cert-injection-webhook")

CA_CERT_KEY = "ca.crt"


class WebhookReconciler:
    def __init__(
        self,
        name: str,
        path: str,
        secret_name: str,
        namespace: str,
        core: Any,
        admission: Any,
    ) -> None:
        self.name = name
        self.path = path
        self.secret_name = secret_name
        self.namespace = namespace
        self.core = core
        self.admission = admission

    def reconcile(self, key: str | None = None) -> bool:
        """
        Drive the webhook configuration toward the secret's CA bundle.

        Returns True when an update was written, False when the configuration
        was already up to date. Raises ReconcileError on any failure.
        """
        log.debug("Reconciling %s", key or self.name)
        try:
            secret = self.core.read_namespaced_secret(self.secret_name, self.namespace)
        except ApiException as e:
            raise ReconcileError(f"error fetching secret {self.secret_name!r}: {e.reason}") from e

        ca_cert = (secret.data or {}).get(CA_CERT_KEY)
        if ca_cert is None:
            raise ReconcileError(f"secret {self.secret_name!r} is missing {CA_CERT_KEY!r} key")

        return self.reconcile_mutating_webhook(ca_cert)

    def reconcile_mutating_webhook(self, ca_cert: str) -> bool:
        """``ca_cert`` is base64 encoded, as both Secret data and caBundle are on the wire."""
        try:
            configured = self.admission.read_mutating_webhook_configuration(self.name)
        except ApiException as e:
            raise ReconcileError(f"error retrieving webhook: {e.reason}") from e

        webhook = copy.deepcopy(configured)
        config_name = webhook.metadata.name if webhook.metadata else self.name
        for hook in webhook.webhooks or []:
            if hook.name != config_name:
                continue
            client_config = hook.client_config
            if client_config is None or client_config.service is None:
                raise ReconcileError(f"missing service reference for webhook: {hook.name}")
            client_config.ca_bundle = ca_cert
            client_config.service.path = self.path

        if webhook == configured:
            log.info("Webhook is valid")
            return False

        log.info("Updating webhook %s", self.name)
        try:
            self.admission.replace_mutating_webhook_configuration(self.name, webhook)
        except ApiException as e:
            # 409 Conflict when someone else updated it since we read it
            raise ReconcileError(f"failed to update webhook: {e.reason}") from e
        return True


class ReconcileWorker:
    """
    Runs a reconciler on a background thread.

    Reconciles every ``interval`` seconds; after a failure it retries sooner,
    with exponential backoff capped at the interval. A single thread per
    reconciler means one key is never reconciled concurrently.
    """

    def __init__(
        self,
        reconciler: WebhookReconciler,
        interval: float,
        initial_backoff: float = 1.0,
    ) -> None:
        self.reconciler = reconciler
        self.interval = max(1.0, float(interval))
        self.initial_backoff = initial_backoff
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.failures = 0

    def next_delay(self) -> float:
        if self.failures == 0:
            return self.interval
        backoff = self.initial_backoff * (2 ** (self.failures - 1))
        return min(self.interval, backoff * random.uniform(1.0, 1.2))

    def run_once(self) -> float:
        """Reconcile once and return how long to wait before the next attempt."""
        try:
            self.reconciler.reconcile(self.reconciler.name)
        except ReconcileError as e:
            self.failures += 1
            log.error("Reconcile of %s failed (attempt %d): %s", self.reconciler.name, self.failures, e)
        except Exception:
            self.failures += 1
            log.error("Unexpected error reconciling %s", self.reconciler.name, exc_info=True)
        else:
            self.failures = 0
        return self.next_delay()

    def _loop(self) -> None:
        while not self._stop.is_set():
            delay = self.run_once()
            self._stop.wait(delay)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="reconcile-worker", daemon=True)
        self._thread.start()
        log.info("Reconcile worker started (interval=%ss)", self.interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
