"""Consult summary document schemas."""

from pydantic import BaseModel, Field

from app.schemas.appointments import Appointment

DEFAULT_FOOTER_NOTE = "Documento generado por AutaMedica. No válido como receta controlada."


class ConsultSummaryRequest(BaseModel):
    """Clinical content of a consult summary; participants come from the appointment."""

    diagnosis: str | None = Field(None, max_length=4000)
    findings: str | None = Field(None, max_length=4000)
    prescription: str | None = Field(None, max_length=4000)
    recommendations: str | None = Field(None, max_length=4000)
    patient_document: str | None = Field(None, max_length=50)
    doctor_license: str | None = Field(None, max_length=50)
    doctor_specialty: str | None = Field(None, max_length=100)
    footer_note: str | None = Field(None, max_length=500)
    logo_png_base64: str | None = None
    signature_png_base64: str | None = None


class PdfConsultData(BaseModel):
    """Everything drawn on a consult summary page."""

    appointment: Appointment
    patient_name: str
    doctor_name: str
    patient_document: str | None = None
    doctor_license: str | None = None
    doctor_specialty: str | None = None
    diagnosis: str | None = None
    findings: str | None = None
    prescription: str | None = None
    recommendations: str | None = None
    footer_note: str = DEFAULT_FOOTER_NOTE
    logo_png_base64: str | None = None
    signature_png_base64: str | None = None


class GeneratedPdf(BaseModel):
    """PDF bytes with a suggested download filename."""

    content: bytes
    filename: str
