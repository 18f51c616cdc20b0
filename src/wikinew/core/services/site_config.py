from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from jsonschema import Draft7Validator

from wikinew.core.domain.entities import WikiRef
from wikinew.core.services.error_codes import ErrorCode, WikinewError
from wikinew.core.services.observability import log_debug

CONFIG_FILENAME = "wikinew.config.yaml"
DEFAULT_WIKI = "xwiki"
DEFAULT_CONTENT_ROOT = "pages"
DEFAULT_PLACEHOLDER_PROVIDER = "XWiki.TemplateProviderTemplate"
DEFAULT_PROVIDER_CLASS = "XWiki.TemplateProviderClass"

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "wikinew site configuration",
    "type": "object",
    "properties": {
        "wiki": {"type": "string", "pattern": "\\S"},
        "content_root": {"type": "string", "minLength": 1},
        "placeholder_provider": {"type": "string", "minLength": 1},
        "provider_class": {"type": "string", "minLength": 1},
        "require_type": {"type": "boolean"},
    },
    "additionalProperties": False,
}

_VALIDATOR = Draft7Validator(CONFIG_SCHEMA)


def _safe_site_relative_path(root_dir: Path, raw: str) -> Optional[str]:
    raw = raw.strip()
    if not raw:
        return None
    p = Path(raw)
    if p.is_absolute():
        return None
    try:
        resolved = (root_dir / p).resolve()
        resolved.relative_to(root_dir.resolve())
    except ValueError:
        return None
    return p.as_posix()


@dataclass(frozen=True)
class SiteConfig:
    root_dir: Path
    wiki_name: str = DEFAULT_WIKI
    content_root: str = DEFAULT_CONTENT_ROOT
    placeholder_provider: str = DEFAULT_PLACEHOLDER_PROVIDER
    provider_class: str = DEFAULT_PROVIDER_CLASS
    require_type: bool = False

    @property
    def wiki(self) -> WikiRef:
        return WikiRef(self.wiki_name)

    @property
    def content_dir(self) -> Path:
        return self.root_dir / self.content_root

    @property
    def config_file(self) -> Path:
        return self.root_dir / CONFIG_FILENAME


def load_site_config(root_dir: str | Path) -> SiteConfig:
    root = Path(root_dir).resolve()
    config_path = root / CONFIG_FILENAME

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise WikinewError(
                code=ErrorCode.CONFIG_INVALID,
                message=f"Failed to read {CONFIG_FILENAME}: {exc}",
                details={"config_path": str(config_path)},
            ) from exc
    log_debug(
        operation="debug.config_loaded",
        details={"config_path": str(config_path), "exists": config_path.exists()},
    )

    if not isinstance(data, dict):
        raise WikinewError(
            code=ErrorCode.CONFIG_INVALID,
            message=f"{CONFIG_FILENAME} must contain a mapping",
            details={"config_path": str(config_path)},
        )

    errors = sorted(_VALIDATOR.iter_errors(data), key=str)
    if errors:
        raise WikinewError(
            code=ErrorCode.CONFIG_INVALID,
            message=f"Invalid {CONFIG_FILENAME}: {errors[0].message}",
            details={
                "config_path": str(config_path),
                "errors": [e.message for e in errors[:3]],
            },
        )

    content_root = DEFAULT_CONTENT_ROOT
    if "content_root" in data:
        normalized = _safe_site_relative_path(root, data["content_root"])
        if normalized is None:
            raise WikinewError(
                code=ErrorCode.CONFIG_INVALID,
                message=f"content_root must stay inside the site root: {data['content_root']}",
                details={"content_root": data["content_root"]},
            )
        content_root = normalized

    return SiteConfig(
        root_dir=root,
        wiki_name=data.get("wiki", DEFAULT_WIKI).strip(),
        content_root=content_root,
        placeholder_provider=data.get("placeholder_provider", DEFAULT_PLACEHOLDER_PROVIDER),
        provider_class=data.get("provider_class", DEFAULT_PROVIDER_CLASS),
        require_type=data.get("require_type", False),
    )
