"""
Premier's Awards Backend - REST API for award nominations

This package provides a FastAPI-based web service for preparing Premier's
Awards nominations. It enables:

- Draft nomination editing with per-submitter draft limits
- PDF attachment uploads and validation
- Nomination PDF generation through an external HTML-to-PDF service
- Merging of the nomination document with its attachments
- Bulk export of nomination packages as zip archives or CSV
- Administrative settings, including the current program year
- Awards event table registrations, guests and seating

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - nominations: Nomination and attachment lifecycle coordinator
    - events: Event registration, guest and seating coordinator
    - packaging: Render, convert and merge pipeline
    - archive: Export archive builder
    - models: Pydantic models for request/response validation
    - configuration: Program config and environment settings

Usage:
    Run the API server with:
        uvicorn premiers_awards_backend.main:app --reload --host 0.0.0.0 --port 8000
"""
