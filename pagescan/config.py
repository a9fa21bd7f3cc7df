"""
Scanner configuration.

Defaults match the interactive scanner's controls; every value can be
overridden through a PAGESCAN_* environment variable, and the CLI flags
override both.
"""

import os
from dataclasses import dataclass, fields, replace
from typing import Any

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
DEFAULT_BLOCK_SIZE = 11
DEFAULT_CONSTANT_C = 2
DEFAULT_PAGE_SIZE = "a4"
DEFAULT_JPEG_QUALITY = 95

ENV_PREFIX = "PAGESCAN_"


@dataclass(frozen=True)
class ScanConfig:
    """Tunable parameters for a scanning session."""
    max_file_size: int = MAX_FILE_SIZE
    block_size: int = DEFAULT_BLOCK_SIZE
    constant_c: int = DEFAULT_CONSTANT_C
    min_crop_size: float = 50.0
    crop_margin: float = 0.1
    page_size: str = DEFAULT_PAGE_SIZE
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    display_max_dimension: int = 1000

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ScanConfig":
        """
        Build a config from PAGESCAN_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ (for tests)

        Raises:
            ValueError: If a variable cannot be converted to the field's type
        """
        overrides: dict[str, Any] = {}
        for f in fields(cls):
            key = ENV_PREFIX + f.name.upper()
            raw = environ.get(key) if environ is not None else os.getenv(key)
            if raw is None or raw.strip() == "":
                continue
            overrides[f.name] = _convert(key, raw.strip(), type(getattr(cls(), f.name)))
        return cls(**overrides)

    def with_overrides(self, **values: Any) -> "ScanConfig":
        """Return a copy with the non-None values replaced."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})


def _convert(key: str, raw: str, kind: type) -> Any:
    try:
        if kind is int:
            return int(raw)
        if kind is float:
            return float(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {key}: {raw!r}") from None
    return raw
