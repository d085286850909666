import base64
import binascii
import os
from dataclasses import dataclass

from .errors import ConfigurationError
from .matcher import MatchRule, parse_rules

DEFAULT_WEBHOOK_NAME = "defaults.webhook.cert-injection.tanzu.vmware.com"
DEFAULT_WEBHOOK_PATH = "/certinjectionwebhook"
DEFAULT_WEBHOOK_SECRET_NAME = "cert-injection-webhook-tls"
DEFAULT_SYSTEM_NAMESPACE = "cert-injection-webhook"
DEFAULT_WEBHOOK_PORT = 8443
DEFAULT_CA_CERTS_FILE = "/run/config_maps/ca_cert/ca.crt"
DEFAULT_HTTP_PROXY_FILE = "/run/config_maps/http_proxy/value"
DEFAULT_HTTPS_PROXY_FILE = "/run/config_maps/https_proxy/value"
DEFAULT_NO_PROXY_FILE = "/run/config_maps/no_proxy/value"


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _get_optional_env(name: str) -> str | None:
    val = os.getenv(name)
    return val if val is not None and val.strip() != "" else None


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


def _parse_bool(name: str, default: bool) -> bool:
    val = _get_env(name, "true" if default else "false")
    return val.lower() in ("1", "true", "yes")


def _parse_list(name: str) -> list[str]:
    # Items are comma-separated, so an item can never contain a comma.
    return [item for item in _get_env(name, "").split(",") if item.strip()]


def _read_file(path: str) -> str:
    # Unmounted or empty config maps mean the feature is not configured.
    try:
        with open(path, encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        return ""


def _read_base64_file(path: str) -> str:
    raw = _read_file(path)
    if not raw.strip():
        return ""
    try:
        return base64.b64decode("".join(raw.split()), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot decode base64 CA certificates in {path}: {e}") from e


def _proxy_env_vars(
    http_proxy: str, https_proxy: str, no_proxy: str
) -> tuple[tuple[str, str], ...]:
    env_vars = []
    for name, value in (
        ("HTTP_PROXY", http_proxy),
        ("HTTPS_PROXY", https_proxy),
        ("NO_PROXY", no_proxy),
    ):
        if value:
            env_vars.append((name, value))
            env_vars.append((name.lower(), value))
    return tuple(env_vars)


@dataclass(frozen=True)
class Settings:
    # Webhook identity
    webhook_name: str = DEFAULT_WEBHOOK_NAME
    webhook_path: str = DEFAULT_WEBHOOK_PATH
    webhook_secret_name: str = DEFAULT_WEBHOOK_SECRET_NAME
    system_namespace: str = DEFAULT_SYSTEM_NAMESPACE
    webhook_port: int = DEFAULT_WEBHOOK_PORT
    tls_cert_file: str = "tls/tls.crt"
    tls_key_file: str = "tls/tls.key"
    app_env: str = "production"

    # Which pods get mutated
    label_rules: tuple[MatchRule, ...] = ()
    annotation_rules: tuple[MatchRule, ...] = ()
    mutate_on_update: bool = False

    # What gets injected
    env_vars: tuple[tuple[str, str], ...] = ()
    ca_certs_data: str = ""
    setup_ca_certs_image: str = ""
    system_registry_secret: str = ""

    # Raw quantities for the setup-ca-certs container, validated when used
    init_container_cpu_request: str | None = None
    init_container_memory_request: str | None = None
    init_container_cpu_limit: str | None = None
    init_container_memory_limit: str | None = None

    # Trust bundle reconcile loop
    reconcile_enabled: bool = True
    reconcile_interval_seconds: int = 300


def load() -> Settings:
    http_proxy = _read_file(_get_env("HTTP_PROXY_FILE", DEFAULT_HTTP_PROXY_FILE))
    https_proxy = _read_file(_get_env("HTTPS_PROXY_FILE", DEFAULT_HTTPS_PROXY_FILE))
    no_proxy = _read_file(_get_env("NO_PROXY_FILE", DEFAULT_NO_PROXY_FILE))

    return Settings(
        webhook_name=_get_env("WEBHOOK_NAME", DEFAULT_WEBHOOK_NAME),
        webhook_path=_get_env("WEBHOOK_PATH", DEFAULT_WEBHOOK_PATH),
        webhook_secret_name=_get_env("WEBHOOK_SECRET_NAME", DEFAULT_WEBHOOK_SECRET_NAME),
        system_namespace=_get_env("SYSTEM_NAMESPACE", DEFAULT_SYSTEM_NAMESPACE),
        webhook_port=_parse_int("WEBHOOK_PORT", DEFAULT_WEBHOOK_PORT),
        tls_cert_file=_get_env("TLS_CERT_FILE", "tls/tls.crt"),
        tls_key_file=_get_env("TLS_KEY_FILE", "tls/tls.key"),
        app_env=_get_env("APP_ENV", "production"),

        label_rules=parse_rules(_parse_list("LABELS")),
        annotation_rules=parse_rules(_parse_list("ANNOTATIONS")),
        mutate_on_update=_parse_bool("MUTATE_ON_UPDATE", False),

        env_vars=_proxy_env_vars(http_proxy, https_proxy, no_proxy),
        ca_certs_data=_read_base64_file(_get_env("CA_CERTS_FILE", DEFAULT_CA_CERTS_FILE)),
        setup_ca_certs_image=_get_env("SETUP_CA_CERTS_IMAGE", ""),
        system_registry_secret=_get_env("SYSTEM_REGISTRY_SECRET", ""),

        init_container_cpu_request=_get_optional_env("INIT_CONTAINER_CPU_REQUEST"),
        init_container_memory_request=_get_optional_env("INIT_CONTAINER_MEMORY_REQUEST"),
        init_container_cpu_limit=_get_optional_env("INIT_CONTAINER_CPU_LIMIT"),
        init_container_memory_limit=_get_optional_env("INIT_CONTAINER_MEMORY_LIMIT"),

        reconcile_enabled=_parse_bool("RECONCILE_ENABLED", True),
        reconcile_interval_seconds=_parse_int("RECONCILE_INTERVAL_SECONDS", 300),
    )
