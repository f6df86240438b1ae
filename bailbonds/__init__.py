# flake8: noqa
"""
Back office for a bail bonds agency.

Modules:
    settings:      Configuration loading, persistence and environment overrides.
    sql:           Validated identifiers, literal rendering and statement builders.
    schema:        Table definitions, enumerations and request models.
    gibson:        HTTP client for the hosted Gibson database query endpoint.
    storage:       Storage facade with Gibson-backed and in-memory backends.
    filters:       List filtering and display formatting helpers.
    reports:       Dashboard, financial and analytics aggregations.
    ai:            OpenAI-compatible assistant client with offline fallbacks.
    notifications: Workflow rules, notification store and reminder monitor.
    portal:        Client portal passwords, sessions and login throttling.
    uploads:       Document and check-in photo upload policies.
    contracts:     Contract template variables and rendering.
    i18n:          English and Spanish interface strings.
    templates:     HTML rendering helpers for the staff pages and client portal.
    main:          FastAPI application wiring everything together.
"""
