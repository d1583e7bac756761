"""Converters package for turning Kibela markdown into esa markdown."""

from .content_transformer import ContentTransformer
from .link_rewriter import LinkRewriter

__all__ = [
    'ContentTransformer',
    'LinkRewriter'
]
