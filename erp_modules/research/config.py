"""
Research Configuration Schema (``erp_modules.research.config``).

Responsibility
--------------
Settings for the research services: number prefixes, the attachment size
ceiling, external-author email policy and the list cache TTL.  Loaded from
the ``research`` section of ``erp_config.get_active_config()``.

Failure modes
-------------
* ``ValueError`` at construction if a prefix is missing or a limit is not
  positive.
"""

from dataclasses import dataclass, field
from typing import Self

from erp_kernel.logging_config import get_logger

logger = get_logger("modules.research.config")

_PUBLICATION_TYPES = ("research_paper", "book", "book_chapter", "conference_paper")


def _default_application_prefixes() -> dict[str, str]:
    return {
        "research_paper": "RP",
        "book": "BK",
        "book_chapter": "BC",
        "conference_paper": "CP",
    }


def _default_tracker_prefixes() -> dict[str, str]:
    return {
        "research_paper": "TRP",
        "book": "TBK",
        "book_chapter": "TBC",
        "conference_paper": "TCP",
    }


@dataclass
class ResearchConfig:
    """Research module settings.

    Contract: every publication type has an application and a tracker prefix.
    """
    application_prefixes: dict[str, str] = field(default_factory=_default_application_prefixes)
    tracker_prefixes: dict[str, str] = field(default_factory=_default_tracker_prefixes)
    max_attachment_bytes: int = 50 * 1024 * 1024
    external_email_required: bool = False
    list_cache_ttl_seconds: int = 300

    def __post_init__(self):
        for name, prefixes in (
            ("application_prefixes", self.application_prefixes),
            ("tracker_prefixes", self.tracker_prefixes),
        ):
            missing = [t for t in _PUBLICATION_TYPES if not prefixes.get(t)]
            if missing:
                raise ValueError(f"{name} missing for: {', '.join(missing)}")
        if self.max_attachment_bytes <= 0:
            raise ValueError("max_attachment_bytes must be positive")
        if self.list_cache_ttl_seconds <= 0:
            raise ValueError("list_cache_ttl_seconds must be positive")
        logger.debug(
            "research_config_initialized",
            extra={
                "max_attachment_bytes": self.max_attachment_bytes,
                "external_email_required": self.external_email_required,
                "list_cache_ttl_seconds": self.list_cache_ttl_seconds,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from the ``research`` section of a configuration set.

        Raises:
            ValueError: if validation fails in ``__post_init__``.
        """
        logger.info(
            "research_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    def application_prefix(self, publication_type: str) -> str:
        return self.application_prefixes[publication_type]

    def tracker_prefix(self, publication_type: str) -> str:
        return self.tracker_prefixes[publication_type]
