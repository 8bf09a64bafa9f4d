"""
MJML email templates for appointment notifications.

Templates return MJML source; compilation to HTML is done by the renderer
handed to the dispatcher.
"""

from datetime import datetime
from html import escape
from typing import Literal

from app.core.time_policy import format_slot
from app.schemas.appointments import Appointment
from app.schemas.notifications import NotificationContext

Audience = Literal["patient", "doctor"]

THEME = {
    "primary": "#0ea5e9",
    "primary_dark": "#3b82f6",
    "danger": "#ef4444",
    "danger_light": "#fef2f2",
    "warning": "#f59e0b",
    "warning_light": "#fffbeb",
    "info_light": "#f0f9ff",
    "background": "#f1f5f9",
    "text": "#374151",
    "text_strong": "#1f2937",
    "muted": "#9ca3af",
    "border": "#e5e7eb",
    "footer": "#1f2937",
}


def _detail(label: str, value: str) -> str:
    return f"""
          <div style="margin-bottom: 12px;">
            <strong style="color: {THEME['text_strong']};">{label}:</strong><br/>
            {value}
          </div>"""


def get_base_template(
    title: str,
    header_title: str,
    header_subtitle: str,
    header_color: str,
    content_sections: str,
    context: NotificationContext,
    cta_url: str | None = None,
    cta_label: str | None = None,
    footer_note: str = "",
) -> str:
    """Base MJML wrapper shared by every appointment email."""
    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
    <mj-section background-color="#ffffff" padding="0 24px 24px">
      <mj-column>
        <mj-button href="{escape(cta_url)}" background-color="{THEME['primary']}" color="white"
          font-size="16px" font-weight="600" border-radius="8px" padding="12px 24px">
          {cta_label}
        </mj-button>
      </mj-column>
    </mj-section>"""

    phone_line = ""
    if context.contact_phone:
        phone_line = f"""
        <mj-text align="center" font-size="14px">
          <strong>Teléfono:</strong> {escape(context.contact_phone)}
        </mj-text>"""

    clinic_name = escape(context.clinic_name)

    return f"""
<mjml>
  <mj-head>
    <mj-title>{title} - {clinic_name}</mj-title>
    <mj-attributes>
      <mj-all font-family="Arial, sans-serif" />
      <mj-text font-size="14px" color="{THEME['text']}" line-height="1.6" />
    </mj-attributes>
  </mj-head>
  <mj-body background-color="{THEME['background']}">
    <mj-section background-color="{header_color}" padding="32px 24px">
      <mj-column>
        <mj-text align="center" font-size="24px" font-weight="700" color="white">
          {header_title}
        </mj-text>
        <mj-text align="center" font-size="16px" color="white" padding-top="8px">
          {header_subtitle}
        </mj-text>
      </mj-column>
    </mj-section>

    {content_sections}

    {cta_section}

    <mj-section background-color="#f8fafc" padding="24px">
      <mj-column>
        <mj-text align="center" font-size="14px">
          Si tienes preguntas, no dudes en contactarnos.
        </mj-text>
        {phone_line}
        <mj-divider border-color="{THEME['border']}" border-width="1px" />
        <mj-text align="center" font-size="12px" color="{THEME['muted']}">
          {footer_note}
          Este es un email automático, por favor no respondas a esta dirección.
        </mj-text>
      </mj-column>
    </mj-section>

    <mj-section background-color="{THEME['footer']}" padding="24px">
      <mj-column>
        <mj-text align="center" color="white" font-size="16px" font-weight="600">
          {clinic_name}
        </mj-text>
      </mj-column>
    </mj-section>
  </mj-body>
</mjml>"""


def confirmation_template(
    appointment: Appointment,
    doctor_name: str,
    patient_name: str,
    context: NotificationContext,
    audience: Audience = "patient",
    previous_start: datetime | None = None,
    previous_end: datetime | None = None,
) -> str:
    """Confirmation email; with ``previous_start`` it announces a reschedule."""
    rescheduled = previous_start is not None
    verb = "reprogramada" if rescheduled else "confirmada"

    if audience == "doctor":
        greeting_name = escape(doctor_name)
        lead = f"La cita con <strong>{escape(patient_name)}</strong> ha sido {verb} exitosamente."
    else:
        greeting_name = escape(patient_name)
        lead = f"Tu cita médica ha sido {verb} exitosamente."

    details = _detail("Fecha y Hora", format_slot(appointment.starts_at, appointment.ends_at))
    if rescheduled:
        details += _detail(
            "Horario anterior",
            format_slot(previous_start, previous_end or previous_start),
        )
    details += _detail("Médico", escape(doctor_name))
    details += _detail("Lugar", escape(context.clinic_address))
    details += _detail("ID de Cita", str(appointment.id))
    if appointment.notes:
        details += _detail("Notas", escape(appointment.notes))

    content = f"""
    <mj-section background-color="#ffffff" padding="32px 24px 16px">
      <mj-column>
        <mj-text font-size="16px">Estimado/a <strong>{greeting_name}</strong>,</mj-text>
        <mj-text>{lead}</mj-text>
      </mj-column>
    </mj-section>
    <mj-section background-color="#ffffff" padding="0 24px">
      <mj-column>
        <mj-text>{details}
        </mj-text>
      </mj-column>
    </mj-section>"""

    title = "Cita Reprogramada" if rescheduled else "Cita Confirmada"
    return get_base_template(
        title=title,
        header_title=title,
        header_subtitle=f"Tu consulta médica ha sido {verb}",
        header_color=THEME["primary"],
        content_sections=content,
        context=context,
        cta_url=context.appointment_url,
        cta_label="Ver mi cita",
        footer_note="Se incluye un archivo de calendario (.ics) para agregar la cita a tu calendario.<br/><br/>",
    )


def cancellation_template(
    appointment: Appointment,
    doctor_name: str,
    patient_name: str,
    context: NotificationContext,
    reason: str | None = None,
    audience: Audience = "patient",
) -> str:
    """Cancellation email."""
    if audience == "doctor":
        greeting_name = escape(doctor_name)
        lead = f"La cita con <strong>{escape(patient_name)}</strong> ha sido <strong>cancelada</strong>."
        next_step = "El paciente puede reprogramar su cita desde el portal de pacientes."
    else:
        greeting_name = escape(patient_name)
        lead = "Lamentamos informarte que tu cita médica ha sido <strong>cancelada</strong>."
        next_step = (
            "Puedes reprogramar tu cita fácilmente desde tu portal de paciente. "
            "Te recomendamos agendar una nueva fecha lo antes posible."
        )

    details = _detail(
        "Fecha y Hora Original", format_slot(appointment.starts_at, appointment.ends_at)
    )
    details += _detail("Médico", escape(doctor_name))
    details += _detail("ID de Cita", str(appointment.id))

    reason_section = ""
    if reason:
        reason_section = f"""
    <mj-section background-color="#ffffff" padding="0 24px">
      <mj-column>
        <mj-text container-background-color="{THEME['warning_light']}">
          <strong>Motivo de la cancelación:</strong><br/>
          {escape(reason)}
        </mj-text>
      </mj-column>
    </mj-section>"""

    content = f"""
    <mj-section background-color="#ffffff" padding="32px 24px 16px">
      <mj-column>
        <mj-text font-size="16px">Estimado/a <strong>{greeting_name}</strong>,</mj-text>
        <mj-text>{lead}</mj-text>
      </mj-column>
    </mj-section>
    <mj-section background-color="#ffffff" padding="0 24px">
      <mj-column>
        <mj-text container-background-color="{THEME['danger_light']}">{details}
        </mj-text>
      </mj-column>
    </mj-section>
    {reason_section}
    <mj-section background-color="#ffffff" padding="24px">
      <mj-column>
        <mj-text container-background-color="{THEME['info_light']}" align="center">
          <strong>¿Qué hacer ahora?</strong><br/><br/>
          {next_step}
        </mj-text>
      </mj-column>
    </mj-section>"""

    return get_base_template(
        title="Cita Cancelada",
        header_title="Cita Cancelada",
        header_subtitle="La consulta médica ha sido cancelada",
        header_color=THEME["danger"],
        content_sections=content,
        context=context,
        cta_url=context.reschedule_url if audience == "patient" else None,
        cta_label="Reprogramar Cita",
        footer_note="Se incluye un archivo de calendario (.ics) de cancelación para actualizar tu calendario.<br/><br/>",
    )


def reminder_template(
    appointment: Appointment,
    doctor_name: str,
    patient_name: str,
    context: NotificationContext,
    hours_before: int,
) -> str:
    """Reminder email sent 24h or 2h before the appointment."""
    urgent = hours_before == 2
    when = "en 2 horas" if urgent else "mañana"

    details = _detail("Fecha y Hora", format_slot(appointment.starts_at, appointment.ends_at))
    details += _detail("Médico", escape(doctor_name))
    details += _detail("Lugar", escape(context.clinic_address))

    advice = (
        "Te recomendamos salir con tiempo y llegar 10 minutos antes."
        if urgent
        else "Recuerda traer tu documento y estudios previos si los tienes."
    )

    content = f"""
    <mj-section background-color="#ffffff" padding="32px 24px 16px">
      <mj-column>
        <mj-text font-size="16px">Hola <strong>{escape(patient_name)}</strong>,</mj-text>
        <mj-text>Te recordamos que tu cita médica es <strong>{when}</strong>.</mj-text>
      </mj-column>
    </mj-section>
    <mj-section background-color="#ffffff" padding="0 24px">
      <mj-column>
        <mj-text>{details}
        </mj-text>
        <mj-text container-background-color="{THEME['warning_light'] if urgent else THEME['info_light']}">
          {advice}
        </mj-text>
      </mj-column>
    </mj-section>"""

    return get_base_template(
        title="Recordatorio de Cita",
        header_title="Recordatorio de Cita",
        header_subtitle=f"Tu cita es {when}",
        header_color=THEME["warning"] if urgent else THEME["primary"],
        content_sections=content,
        context=context,
        cta_url=context.appointment_url,
        cta_label="Ver mi cita",
    )
