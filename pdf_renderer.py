"""
HTML to PDF conversion behind a small interface so the certificate issuer
never depends on a specific engine. Tests swap in a stub through
app.config['PDF_RENDERER'].
"""
import logging
from io import BytesIO

from reportlab.lib.pagesizes import A4
from xhtml2pdf import pisa

from errors import RenderUnavailable


class PdfRenderer:
    """Interface: render(html) -> PDF bytes. Raise RenderUnavailable on failure."""

    page_size = A4

    def page_css(self):
        width, height = self.page_size
        return f'@page {{ size: {width:.0f}pt {height:.0f}pt; margin: 0; }}'

    def render(self, html: str) -> bytes:
        raise NotImplementedError


class XhtmlPdfRenderer(PdfRenderer):
    """xhtml2pdf (ReportLab based) renderer: fixed page, zero margins, backgrounds kept."""

    def render(self, html: str) -> bytes:
        out = BytesIO()
        try:
            result = pisa.CreatePDF(src=html, dest=out, encoding='utf-8')
        except Exception as e:
            logging.exception('[PDF] Rendering engine failed')
            raise RenderUnavailable() from e
        if result.err:
            logging.error('[PDF] Rendering engine reported %s error(s)', result.err)
            raise RenderUnavailable()
        return out.getvalue()
