"""High-level ingestion helpers to load posts from the workspace."""

from __future__ import annotations

from typing import List

from .config import Config
from .content import PostDocument, load_post
from .validation import iter_post_files, validate_document


def load_posts(config: Config, *, validate: bool = True) -> list[PostDocument]:
    """Load every post under the configured content directory.

    With ``validate`` set, the first post whose front matter violates the
    schema raises ``DocumentValidationError``.
    """
    documents: List[PostDocument] = []
    for path in iter_post_files(config.content_dir):
        document = load_post(path)
        if validate:
            validate_document(document)
        documents.append(document)
    return documents
