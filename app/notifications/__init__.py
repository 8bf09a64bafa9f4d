"""Appointment notifications: templates, calendar artifacts and delivery."""
