"""Utilities for loading and modelling front-matter posts."""

from .models import (
    CodeBlock,
    ContentBlock,
    HeadingBlock,
    ImageBlock,
    OtherBlock,
    ParagraphBlock,
    PostDocument,
    PostMeta,
)
from .parsers import FrontMatterError, load_post, parse_post, slugify

__all__ = [
    "CodeBlock",
    "ContentBlock",
    "FrontMatterError",
    "HeadingBlock",
    "ImageBlock",
    "OtherBlock",
    "ParagraphBlock",
    "PostDocument",
    "PostMeta",
    "load_post",
    "parse_post",
    "slugify",
]
