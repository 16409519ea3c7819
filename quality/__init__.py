"""Quality utilities: URL normalization and article identity."""

from quality.urlnorm import article_id_for_url, canonicalize_url

__all__ = ["article_id_for_url", "canonicalize_url"]
