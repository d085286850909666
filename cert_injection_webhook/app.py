"""
Copyright The cert-injection-webhook Authors.
SPDX-License-Identifier: MIT-0

Entry point for the cert-injection webhook. Serve with gunicorn (``cert_injection_webhook.app:create_app()``) or run the
module directly for the built-in TLS server.
"""
import logging
import os

from flask import Flask
from kubernetes import client, config

from .admission import AdmissionController
from .config import Settings, load
from .reconciler import ReconcileWorker, WebhookReconciler
from .routes import create_routes

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("cert-injection-webhook")


def _start_reconcile_worker(settings: Settings, core, admission_api) -> ReconcileWorker:
    if core is None or admission_api is None:
        config.load_incluster_config()
        core = core or client.CoreV1Api()
        admission_api = admission_api or client.AdmissionregistrationV1Api()

    reconciler = WebhookReconciler(
        name=settings.webhook_name,
        path=settings.webhook_path,
        secret_name=settings.webhook_secret_name,
        namespace=settings.system_namespace,
        core=core,
        admission=admission_api,
    )
    worker = ReconcileWorker(reconciler, settings.reconcile_interval_seconds)
    worker.start()
    return worker


def create_app(
    settings: Settings | None = None, core=None, admission_api=None
) -> Flask:
    settings = settings or load()
    controller = AdmissionController(settings)

    app = Flask(__name__)
    app.register_blueprint(create_routes(controller))

    # Avoid constructing real Kubernetes clients in tests
    if settings.app_env == "test":
        log.warning("APP_ENV=test; reconcile worker disabled")
    elif not settings.reconcile_enabled:
        log.info("Reconcile worker disabled by config")
    else:
        app.extensions["reconcile_worker"] = _start_reconcile_worker(
            settings, core, admission_api
        )

    log.info(
        "Webhook %s serving %s (labels=%s annotations=%s env_vars=%d ca_certs=%s)",
        settings.webhook_name,
        settings.webhook_path,
        [str(r) for r in settings.label_rules],
        [str(r) for r in settings.annotation_rules],
        len(settings.env_vars),
        bool(settings.ca_certs_data),
    )
    return app


if __name__ == "__main__":
    settings = load()
    log.info("Starting webhook server...")
    create_app(settings).run(
        host="0.0.0.0",
        port=settings.webhook_port,
        ssl_context=(settings.tls_cert_file, settings.tls_key_file),
    )
