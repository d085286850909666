"""
Runs inside the injected setup-ca-certs init container.

Reassembles the CA certificates passed as ``CA_CERTS_DATA_<i>`` variables,
builds a trust store with ``update-ca-certificates`` and copies it into the
shared volume mounted at ``/workspace``, which the workload containers mount
read-only at ``/etc/ssl/certs``.
"""
import logging
import os
import shutil
import subprocess
import sys
import tempfile
from collections.abc import Mapping

from .certs import CA_CERTS_ENV_PREFIX, parse, split
from .errors import CertInjectionError

log = logging.getLogger("cert-injection-webhook")

WORKSPACE = "/workspace"


def write_certs(directory: str, bundle: str) -> list[str]:
    paths = []
    for i, cert in enumerate(split(bundle)):
        path = os.path.join(directory, f"cert_injection_webhook_{i}.crt")
        with open(path, "w", encoding="utf-8") as f:
            f.write(cert)
        paths.append(path)
    return paths


def update_ca_certificates(etc_certs_dir: str, local_certs_dir: str) -> str:
    result = subprocess.run(
        [
            "update-ca-certificates",
            "--etccertsdir",
            etc_certs_dir,
            "--localcertsdir",
            local_certs_dir,
        ],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        check=True,
    )
    return result.stdout


def setup(environ: Mapping[str, str], workspace: str = WORKSPACE) -> int:
    """Install the certificates from ``environ`` into ``workspace``; returns the count."""
    with tempfile.TemporaryDirectory(prefix="local") as local_dir, \
            tempfile.TemporaryDirectory(prefix="certs") as certs_dir:
        log.info("Parsing certificate(s)...")
        bundle, count = parse(CA_CERTS_ENV_PREFIX, environ)

        log.info("Populate %d certificate(s)...", count)
        write_certs(local_dir, bundle)

        log.info("Update CA certificates...")
        log.info(update_ca_certificates(certs_dir, local_dir))

        log.info("Copying CA certificates...")
        shutil.copytree(certs_dir, workspace, dirs_exist_ok=True)

    log.info("Finished setting up CA certificates")
    return count


def main() -> int:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(message)s",
        stream=sys.stdout,
    )
    try:
        setup(os.environ)
    except CertInjectionError as e:
        log.error("%s", e)
        return 1
    except subprocess.CalledProcessError as e:
        log.error("update-ca-certificates failed (exit %s): %s", e.returncode, e.output)
        return 1
    except OSError as e:
        log.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
