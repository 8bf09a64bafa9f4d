"""Template renderer capability for notification bodies."""

import re
from io import StringIO
from typing import Any, Protocol

import structlog
from mjml import mjml_to_html
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class RenderResult(BaseModel):
    """Rendered HTML plus any non-fatal compiler findings."""

    html: str
    errors: list[str] = Field(default_factory=list)
    fallback: bool = False


class TemplateRenderer(Protocol):
    """Compiles MJML source to e-mail ready HTML."""

    def render(self, source: str) -> RenderResult: ...


class MjmlRenderer:
    """Renderer backed by the ``mjml`` compiler."""

    def render(self, source: str) -> RenderResult:
        """
        Compile MJML to HTML.

        Compiler warnings are logged and returned; they do not fail the render.
        """
        result: Any = mjml_to_html(StringIO(source))
        if isinstance(result, dict):
            html = result.get("html", "")
            errors = result.get("errors") or []
        else:
            html, errors = str(result), []

        if errors:
            logger.warning("mjml_compilation_warnings", errors=[str(e) for e in errors])

        return RenderResult(html=html, errors=[str(e) for e in errors])


_FALLBACK_RULES: list[tuple[str, str]] = [
    (r"<mj-head>.*?</mj-head>", ""),
    (r"<mj-body[^>]*>", '<body style="margin:0;padding:0;background-color:#f6f7fb;">'),
    (r"</mj-body>", "</body>"),
    (
        r"<mj-section[^>]*>",
        '<div style="max-width:600px;margin:0 auto;background:#ffffff;padding:24px;">',
    ),
    (r"</mj-section>", "</div>"),
    (r"<mj-column[^>]*>", "<div>"),
    (r"</mj-column>", "</div>"),
    (r"<mj-text[^>]*>", '<div style="font-family:Arial,sans-serif;line-height:1.6;">'),
    (r"</mj-text>", "</div>"),
    (
        r'<mj-button[^>]*href="([^"]*)"[^>]*>',
        r'<a href="\1" style="display:inline-block;padding:12px 24px;background:#0ea5e9;'
        r'color:white;text-decoration:none;border-radius:4px;">',
    ),
    (r"</mj-button>", "</a>"),
    (r"<mj-divider[^>]*/>", '<hr style="border:none;border-top:1px solid #e5e7eb;margin:20px 0;">'),
    (
        r"<mjml[^>]*>",
        '<html><head><meta charset="utf-8">'
        '<meta name="viewport" content="width=device-width,initial-scale=1"></head>',
    ),
    (r"</mjml>", "</html>"),
]


def render_basic_html(source: str) -> RenderResult:
    """Minimal MJML to HTML conversion used when no renderer is configured."""
    html = source
    for pattern, replacement in _FALLBACK_RULES:
        html = re.sub(pattern, replacement, html, flags=re.DOTALL)
    return RenderResult(html=html, fallback=True)


def render_template(renderer: TemplateRenderer | None, source: str) -> RenderResult:
    """Render with the configured renderer, or degrade to the basic HTML fallback."""
    if renderer is None:
        logger.warning("template_renderer_unavailable", note="using basic HTML fallback")
        return render_basic_html(source)
    return renderer.render(source)
