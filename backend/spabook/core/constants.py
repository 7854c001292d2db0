# backend/spabook/core/constants.py
"""Application-wide constants."""

BRAND_NAME = "SpaBook"

API_TITLE = f"{BRAND_NAME} Booking API"
API_DESCRIPTION = "Booking lifecycle, slot capacity and payment validation for multi-branch spas"
API_VERSION = "1.0.0"
