"""
PEM chunking for CA bundles.

A CA bundle can be larger than a single environment variable comfortably
holds, so it travels to the setup-ca-certs init container as one variable per
certificate: ``CA_CERTS_DATA_0``, ``CA_CERTS_DATA_1``, ...

``split`` is permissive (anything that is not a well-formed PEM block is
skipped), ``parse`` is strict (one bad fragment rejects the whole bundle).
"""

import base64
import binascii
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .errors import CertificateError

CA_CERTS_ENV_PREFIX = "CA_CERTS_DATA"

_BEGIN = "-----BEGIN "
_END = "-----END "
_DASHES = "-----"
_LINE_LENGTH = 64
_PROC_TYPE = "Proc-Type"


@dataclass(frozen=True)
class PemBlock:
    type: str
    content: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    def encode(self) -> str:
        """Canonical PEM text: sorted headers, 64 column body, trailing newline."""
        lines = [f"{_BEGIN}{self.type}{_DASHES}"]
        if self.headers:
            keys = sorted(k for k in self.headers if k != _PROC_TYPE)
            if _PROC_TYPE in self.headers:
                keys.insert(0, _PROC_TYPE)
            lines.extend(f"{k}: {self.headers[k]}" for k in keys)
            lines.append("")
        body = base64.b64encode(self.content).decode("ascii")
        lines.extend(
            body[i : i + _LINE_LENGTH] for i in range(0, len(body), _LINE_LENGTH)
        )
        lines.append(f"{_END}{self.type}{_DASHES}")
        return "\n".join(lines) + "\n"


def _get_line(data: str) -> tuple[str, str]:
    line, _, rest = data.partition("\n")
    return line.rstrip(" \t\r"), rest


def decode(data: str) -> tuple[PemBlock | None, str]:
    """
    Find the next PEM block in ``data``.

    Returns the block and the text following its END line. Candidates that
    are not well formed (bad type line, missing or mismatched END line,
    invalid base64) are skipped. When no block is found the result is
    ``(None, data)``.
    """
    rest = data
    while True:
        if rest.startswith(_BEGIN):
            rest = rest[len(_BEGIN) :]
        else:
            idx = rest.find("\n" + _BEGIN)
            if idx < 0:
                return None, data
            rest = rest[idx + 1 + len(_BEGIN) :]

        type_line, rest = _get_line(rest)
        if not type_line.endswith(_DASHES):
            continue
        block_type = type_line[: -len(_DASHES)]

        headers: dict[str, str] = {}
        while True:
            if not rest:
                return None, data
            line, following = _get_line(rest)
            key, sep, value = line.partition(":")
            if not sep:
                break
            headers[key.strip()] = value.strip()
            rest = following

        if not headers and rest.startswith(_END):
            end_index, trailer_index = 0, len(_END)
        else:
            end_index = rest.find("\n" + _END)
            trailer_index = end_index + 1 + len(_END)
        if end_index < 0:
            continue

        trailer = rest[trailer_index:]
        expected = block_type + _DASHES
        if not trailer.startswith(expected):
            continue
        leftover, after = _get_line(trailer[len(expected) :])
        if leftover:
            continue

        try:
            content = base64.b64decode("".join(rest[:end_index].split()), validate=True)
        except (binascii.Error, ValueError):
            continue

        return PemBlock(type=block_type, content=content, headers=headers), after


def split(bundle: str) -> list[str]:
    """Split a bundle into canonically re-encoded single-block fragments."""
    fragments = []
    block, rest = decode(bundle)
    while block is not None:
        fragments.append(block.encode())
        block, rest = decode(rest)
    return fragments


def fragment_env_name(prefix: str, index: int) -> str:
    return f"{prefix}_{index}"


def _env_lookup(environ: Mapping[str, str] | Iterable[str]) -> dict[str, str]:
    if isinstance(environ, Mapping):
        return dict(environ)
    lookup = {}
    for entry in environ:
        name, _, value = entry.partition("=")
        lookup[name] = value
    return lookup


def parse(
    prefix: str, environ: Mapping[str, str] | Iterable[str]
) -> tuple[str, int]:
    """
    Reassemble a bundle from ``<prefix>_0``, ``<prefix>_1``, ...

    ``environ`` is either a mapping or ``NAME=value`` strings (as in
    ``os.environ`` or ``/proc/self/environ``). Numbering stops at the first
    missing index. Every value found must be exactly one PEM block; otherwise
    CertificateError is raised and nothing is returned.

    Returns the concatenated fragments and how many were consumed.
    """
    lookup = _env_lookup(environ)
    fragments = []
    while True:
        name = fragment_env_name(prefix, len(fragments))
        fragment = lookup.get(name)
        if fragment is None:
            return "".join(fragments), len(fragments)

        block, rest = decode(fragment)
        if block is None:
            raise CertificateError(f"{name}: cert not in pem format")
        if decode(rest)[0] is not None:
            raise CertificateError(f"{name}: expected a single pem block")
        fragments.append(fragment if fragment.endswith("\n") else fragment + "\n")
