"""Consult summary PDF generation."""

import base64
import io

import structlog
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from app.core.time_policy import format_datetime
from app.schemas.consult import GeneratedPdf, PdfConsultData

logger = structlog.get_logger(__name__)

MARGIN = 40
LABEL_WIDTH = 130
BOTTOM_LIMIT = 90


class ConsultPdfGenerator:
    """Draws a single consult summary on A4 pages."""

    def __init__(self, data: PdfConsultData):
        """Initialize generator with the consult data."""
        self.data = data
        self.buffer = io.BytesIO()
        self.page_width, self.page_height = A4
        self.canvas = canvas.Canvas(self.buffer, pagesize=A4)
        self.canvas.setTitle(f"Informe de consulta {data.appointment.id}")
        self.y = self.page_height - 42

    def _ensure_space(self, height: float) -> None:
        if self.y - height < BOTTOM_LIMIT:
            self._draw_footer()
            self.canvas.showPage()
            self.y = self.page_height - 42

    def _load_image(self, encoded: str, label: str) -> ImageReader | None:
        """Decode a base64 PNG; malformed input is logged and skipped."""
        try:
            image = ImageReader(io.BytesIO(base64.b64decode(encoded, validate=True)))
            image.getSize()
        except Exception as e:
            logger.warning("pdf_image_skipped", image=label, error=str(e))
            return None
        return image

    def _draw_image(self, image: ImageReader, x: float, width: float) -> float:
        image_width, image_height = image.getSize()
        height = image_height / image_width * width
        self.canvas.drawImage(image, x, self.y - height, width=width, height=height, mask="auto")
        return height

    def _line(self, label: str, value: str | None) -> None:
        self.canvas.setFont("Helvetica-Bold", 10)
        self.canvas.drawString(MARGIN, self.y, label)
        self.canvas.setFont("Helvetica", 10)
        self.canvas.drawString(MARGIN + LABEL_WIDTH, self.y, value or "-")
        self.y -= 16

    def _block(self, title: str, text: str | None) -> None:
        if not text:
            return

        rows = simpleSplit(" ".join(text.split()), "Helvetica", 10, self.page_width - 2 * MARGIN)
        self._ensure_space(14)
        self.canvas.setFont("Helvetica-Bold", 12)
        self.canvas.drawString(MARGIN, self.y, title)
        self.y -= 14

        self.canvas.setFont("Helvetica", 10)
        for row in rows:
            self._ensure_space(14)
            self.canvas.setFont("Helvetica", 10)
            self.canvas.drawString(MARGIN, self.y, row)
            self.y -= 14
        self.y -= 6

    def _draw_footer(self) -> None:
        self.canvas.setStrokeColor(colors.Color(0.9, 0.9, 0.9))
        self.canvas.setLineWidth(0.6)
        self.canvas.line(MARGIN, 70, self.page_width - MARGIN, 70)

        self.canvas.setFont("Helvetica", 8)
        self.canvas.setFillColor(colors.Color(0.35, 0.35, 0.35))
        rows = simpleSplit(self.data.footer_note, "Helvetica", 8, self.page_width - 2 * MARGIN)
        for i, row in enumerate(rows):
            self.canvas.drawString(MARGIN, 50 - i * 12, row)
        self.canvas.setFillColor(colors.black)
        self.canvas.setStrokeColor(colors.black)

    def generate(self) -> bytes:
        """Render the document and return the PDF bytes."""
        data = self.data
        appointment = data.appointment

        if data.logo_png_base64:
            logo = self._load_image(data.logo_png_base64, "logo")
            if logo is not None:
                self._draw_image(logo, self.page_width - MARGIN - 90, 90)

        self.canvas.setFont("Helvetica-Bold", 16)
        self.canvas.drawString(MARGIN, self.y, "INFORME DE CONSULTA")
        self.y -= 28

        patient = data.patient_name
        if data.patient_document:
            patient += f" - DOC: {data.patient_document}"
        doctor = data.doctor_name
        if data.doctor_license:
            doctor += f" - MP: {data.doctor_license}"

        self._line("Paciente", patient)
        self._line("Médico", doctor)
        self._line("Especialidad", data.doctor_specialty)
        self._line(
            "Fecha y hora",
            f"{format_datetime(appointment.starts_at)} - {format_datetime(appointment.ends_at)}",
        )

        self.y -= 6
        self.canvas.setStrokeColor(colors.Color(0.8, 0.8, 0.8))
        self.canvas.setLineWidth(0.8)
        self.canvas.line(MARGIN, self.y, self.page_width - MARGIN, self.y)
        self.canvas.setStrokeColor(colors.black)
        self.y -= 18

        self._block("Motivo / Hallazgos", data.findings)
        self._block("Diagnóstico", data.diagnosis)
        self._block("Indicaciones / Prescripción", data.prescription)
        self._block("Recomendaciones", data.recommendations)

        if data.signature_png_base64:
            signature = self._load_image(data.signature_png_base64, "signature")
            if signature is not None:
                self._ensure_space(80)
                self.y -= self._draw_image(signature, MARGIN, 140) + 10

        self._ensure_space(50)
        self.canvas.setLineWidth(0.6)
        self.canvas.line(MARGIN, self.y, MARGIN + 180, self.y)
        self.y -= 14
        self.canvas.setFont("Helvetica", 10)
        self.canvas.drawString(MARGIN, self.y, data.doctor_name)
        self.y -= 12

        self.canvas.setFont("Helvetica", 9)
        if data.doctor_license:
            self.canvas.drawString(MARGIN, self.y, f"MP: {data.doctor_license}")
            self.y -= 12
        if data.doctor_specialty:
            self.canvas.drawString(MARGIN, self.y, data.doctor_specialty)
            self.y -= 12

        self._draw_footer()
        self.canvas.save()
        return self.buffer.getvalue()


def generate_consult_pdf(data: PdfConsultData) -> GeneratedPdf:
    """
    Build the consult summary PDF of an appointment.

    Optional logo and signature images that cannot be decoded are skipped.

    Args:
        data: Appointment, participants and clinical content

    Returns:
        PDF bytes and the ``consulta_<appointment_id>.pdf`` filename
    """
    content = ConsultPdfGenerator(data).generate()
    logger.info(
        "consult_pdf_generated",
        appointment_id=str(data.appointment.id),
        size=len(content),
    )
    return GeneratedPdf(content=content, filename=f"consulta_{data.appointment.id}.pdf")
