"""
Services Module
Business logic layer for the DoseSentinel application

Import services from their modules, e.g.
    from services.adherence_service import adherence_service
The sweeper depends on the actions package, which in turn depends on the
audit and guardian services, so nothing is imported eagerly here.
"""

__all__ = [
    "adherence_service",
    "analytics_service",
    "audit_service",
    "guardian_service",
    "medication_service",
    "sweep_service",
]
