from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from typing import Any

# Plain-text fallback only recognises four-part build numbers such as 25.10.2.0.
VERSION_TEXT_PATTERN = re.compile(r"\d+\.\d+\.\d+\.\d+")


@dataclass(frozen=True)
class VersionMetadata:
    namespace: str | None
    detected_version: str | None
    full_namespace: str | None
    full_version_tag: str | None

    def to_dict(self) -> dict:
        return asdict(self)


def _text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _namespace_color(namespace: str | None) -> str | None:
    if namespace is None:
        return None
    return namespace.split("-")[-1] or None


def _version_from_tag(tag: str | None) -> str | None:
    if tag is None:
        return None
    return tag.split("-", 1)[0] or None


def _from_mapping(data: dict) -> VersionMetadata:
    full_namespace = _text(data.get("namespace"))
    static_tag = _text(data.get("staticImageTag"))
    image_tag = _text(data.get("imageTag"))
    direct_version = _text(data.get("version"))

    if static_tag is not None:
        detected_version, full_version_tag = _version_from_tag(static_tag), static_tag
    elif image_tag is not None:
        detected_version, full_version_tag = _version_from_tag(image_tag), image_tag
    else:
        detected_version, full_version_tag = direct_version, direct_version

    return VersionMetadata(
        namespace=_namespace_color(full_namespace),
        detected_version=detected_version,
        full_namespace=full_namespace,
        full_version_tag=full_version_tag,
    )


def _from_text(raw_text: str) -> VersionMetadata | None:
    match = VERSION_TEXT_PATTERN.search(raw_text)
    if match is None:
        return None
    version = match.group(0)
    return VersionMetadata(
        namespace=None,
        detected_version=version,
        full_namespace=None,
        full_version_tag=version,
    )


def parse_version_payload(raw_body: str | bytes | None) -> VersionMetadata | None:
    """Normalise a version endpoint body into namespace color and version.

    ``{"namespace": "mojito-888casino1-green", "staticImageTag": "25.10.2.0-5048fea"}``
    becomes ``namespace="green"`` and ``detected_version="25.10.2.0"``. Bodies that
    are not a JSON object fall back to a regex over the raw text. ``None`` means
    nothing usable was found and must be handled like an unreachable endpoint.
    """
    if raw_body is None:
        return None
    if isinstance(raw_body, bytes):
        raw_text = raw_body.decode("utf-8", errors="replace")
    else:
        raw_text = raw_body

    try:
        data = json.loads(raw_text)
    except ValueError:
        data = None

    if isinstance(data, dict):
        return _from_mapping(data)
    return _from_text(raw_text)
