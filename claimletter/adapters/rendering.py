from __future__ import annotations

from claimletter.errors import AdapterFailure

ADAPTER_NAME = "rendering"

# Core PDF fonts are Latin-1 only; map the characters generated letters commonly carry.
_REPLACEMENTS = {
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "–": "-",
    "—": "-",
    "…": "...",
    " ": " ",
    "•": "-",
}


def to_latin1(text: str) -> str:
    for source, target in _REPLACEMENTS.items():
        text = text.replace(source, target)
    return text.encode("latin-1", "replace").decode("latin-1")


class PdfRenderer:
    """Lay out plain letter text on A4 pages."""

    backend_name = "fpdf2"

    def __init__(self, *, font_family: str = "Helvetica", font_size: int = 12, line_height: float = 7.0) -> None:
        self._font_family = font_family
        self._font_size = font_size
        self._line_height = line_height

    def render_to_document(self, text: str) -> bytes:
        if not text or not text.strip():
            raise AdapterFailure(ADAPTER_NAME, "nothing to render")
        # Import locally so modules that never render do not load the library.
        from fpdf import FPDF

        try:
            pdf = FPDF(format="A4")
            pdf.set_margins(20, 20, 20)
            pdf.set_auto_page_break(auto=True, margin=20)
            pdf.add_page()
            pdf.set_font(self._font_family, size=self._font_size)
            pdf.multi_cell(0, self._line_height, to_latin1(text.strip()))
            return bytes(pdf.output())
        except Exception as exc:
            raise AdapterFailure(ADAPTER_NAME, f"{type(exc).__name__}: {exc}") from exc
