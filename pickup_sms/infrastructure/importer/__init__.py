from .review_links import (
    LinkResolution,
    ReviewLinkImportError,
    ReviewLinkResolver,
    parse_review_links,
)

__all__ = [
    "LinkResolution",
    "ReviewLinkImportError",
    "ReviewLinkResolver",
    "parse_review_links",
]
