"""Rendering collaborators and the rendered text-node model."""

from .dom import DomRange, RenderedContainer, TextNode, text_content
from .markdown import MarkdownRenderer, RenderContext, Renderer

__all__ = [
    "DomRange",
    "MarkdownRenderer",
    "RenderContext",
    "RenderedContainer",
    "Renderer",
    "TextNode",
    "text_content",
]
