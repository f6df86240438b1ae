from __future__ import annotations

from typing import Dict, Optional

SUPPORTED_LANGUAGES = ("en", "es")
DEFAULT_LANGUAGE = "en"

STRINGS: Dict[str, Dict[str, str]] = {
    "en": {
        "app.title": "BailBond Pro",
        "nav.dashboard": "Dashboard",
        "nav.clients": "Clients",
        "nav.cases": "Cases",
        "nav.bonds": "Bonds",
        "nav.financial": "Financial",
        "nav.documents": "Documents",
        "nav.reports": "Reports",
        "nav.notifications": "Notifications",
        "nav.contracts": "Contracts",
        "nav.settings": "Settings",
        "nav.help": "Help",
        "nav.portal": "Client Portal",
        "page.dashboard": "Dashboard Overview",
        "page.clients": "Client Management",
        "page.client": "Client Details",
        "page.cases": "Case Management",
        "page.bonds": "Bond Management",
        "page.financial": "Financial Overview",
        "page.documents": "Document Management",
        "page.reports": "Reports & Analytics",
        "page.notifications": "Notifications & Workflows",
        "page.contracts": "Contract Templates",
        "page.settings": "Settings",
        "page.help": "Help Center",
        "page.portal_login": "Client Portal Login",
        "page.portal": "My Bond Status",
        "stats.active_bonds": "Active Bonds",
        "stats.total_revenue": "Total Revenue",
        "stats.pending_payments": "Pending Payments",
        "stats.upcoming_court_dates": "Upcoming Court Dates",
        "stats.monthly_revenue": "Monthly Revenue",
        "stats.outstanding": "Outstanding",
        "stats.collection_rate": "Collection Rate",
        "section.recent_activity": "Recent Activity",
        "section.upcoming_court": "Upcoming Court Dates",
        "section.workflow_rules": "Workflow Rules",
        "section.bond_status": "Bond Status",
        "section.risk": "Client Risk",
        "section.revenue": "Revenue (last 6 months)",
        "section.payment_methods": "Payment Methods",
        "section.performance": "Performance",
        "section.checkins": "Check-ins",
        "status.active": "Active",
        "status.inactive": "Inactive",
        "status.high_risk": "High Risk",
        "status.open": "Open",
        "status.closed": "Closed",
        "status.dismissed": "Dismissed",
        "status.completed": "Completed",
        "status.forfeited": "Forfeited",
        "status.at_risk": "At Risk",
        "status.pending": "Pending",
        "status.partial": "Partial",
        "status.paid_full": "Paid in Full",
        "status.overdue": "Overdue",
        "status.failed": "Failed",
        "status.refunded": "Refunded",
        "status.sent": "Sent",
        "status.read": "Read",
        "status.draft": "Draft",
        "status.signed": "Signed",
        "status.executed": "Executed",
        "category.contract": "Contracts",
        "category.court_papers": "Court Papers",
        "category.identification": "Identification",
        "category.financial": "Financial",
        "filter.all": "All",
        "action.search": "Search",
        "action.filter": "Filter",
        "action.save": "Save",
        "action.upload": "Upload",
        "action.mark_read": "Mark read",
        "action.dismiss": "Dismiss",
        "action.scan": "Run reminder scan",
        "action.export": "Export CSV",
        "action.login": "Log in",
        "action.ask": "Ask",
        "action.logout": "Log out",
        "label.username": "Username",
        "label.password": "Password",
        "label.name": "Name",
        "label.phone": "Phone",
        "label.email": "Email",
        "label.status": "Status",
        "label.bond_number": "Bond #",
        "label.case_number": "Case #",
        "label.amount": "Amount",
        "label.premium": "Premium",
        "label.court_date": "Court Date",
        "label.charges": "Charges",
        "label.client": "Client",
        "label.category": "Category",
        "label.file": "File",
        "label.size": "Size",
        "label.uploaded": "Uploaded",
        "label.last_checkin": "Last check-in",
        "label.question": "Question",
        "label.language": "Language",
        "empty.none": "Nothing to show yet.",
        "portal.invalid_login": "Invalid username or password.",
        "portal.logged_out": "Please log in to view your bond status.",
        "help.unavailable": "The assistant is not configured. Contact the agency office for help.",
    },
    "es": {
        "app.title": "BailBond Pro",
        "nav.dashboard": "Panel",
        "nav.clients": "Clientes",
        "nav.cases": "Casos",
        "nav.bonds": "Fianzas",
        "nav.financial": "Finanzas",
        "nav.documents": "Documentos",
        "nav.reports": "Informes",
        "nav.notifications": "Notificaciones",
        "nav.contracts": "Contratos",
        "nav.settings": "Configuración",
        "nav.help": "Ayuda",
        "nav.portal": "Portal del Cliente",
        "page.dashboard": "Resumen del Panel",
        "page.clients": "Gestión de Clientes",
        "page.client": "Detalles del Cliente",
        "page.cases": "Gestión de Casos",
        "page.bonds": "Gestión de Fianzas",
        "page.financial": "Resumen Financiero",
        "page.documents": "Gestión de Documentos",
        "page.reports": "Informes y Análisis",
        "page.notifications": "Notificaciones y Flujos de Trabajo",
        "page.contracts": "Plantillas de Contrato",
        "page.settings": "Configuración",
        "page.help": "Centro de Ayuda",
        "page.portal_login": "Acceso al Portal del Cliente",
        "page.portal": "Estado de Mi Fianza",
        "stats.active_bonds": "Fianzas Activas",
        "stats.total_revenue": "Ingresos Totales",
        "stats.pending_payments": "Pagos Pendientes",
        "stats.upcoming_court_dates": "Próximas Fechas de Corte",
        "stats.monthly_revenue": "Ingresos del Mes",
        "stats.outstanding": "Pendiente",
        "stats.collection_rate": "Tasa de Cobro",
        "section.recent_activity": "Actividad Reciente",
        "section.upcoming_court": "Próximas Fechas de Corte",
        "section.workflow_rules": "Reglas de Flujo de Trabajo",
        "section.bond_status": "Estado de Fianzas",
        "section.risk": "Riesgo de Clientes",
        "section.revenue": "Ingresos (últimos 6 meses)",
        "section.payment_methods": "Métodos de Pago",
        "section.performance": "Rendimiento",
        "section.checkins": "Registros",
        "status.active": "Activo",
        "status.inactive": "Inactivo",
        "status.high_risk": "Alto Riesgo",
        "status.open": "Abierto",
        "status.closed": "Cerrado",
        "status.dismissed": "Desestimado",
        "status.completed": "Completado",
        "status.forfeited": "Perdida",
        "status.at_risk": "En Riesgo",
        "status.pending": "Pendiente",
        "status.partial": "Parcial",
        "status.paid_full": "Pagado Completo",
        "status.overdue": "Vencido",
        "status.failed": "Fallido",
        "status.refunded": "Reembolsado",
        "status.sent": "Enviado",
        "status.read": "Leído",
        "status.draft": "Borrador",
        "status.signed": "Firmado",
        "status.executed": "Ejecutado",
        "category.contract": "Contratos",
        "category.court_papers": "Documentos Judiciales",
        "category.identification": "Identificación",
        "category.financial": "Financiero",
        "filter.all": "Todos",
        "action.search": "Buscar",
        "action.filter": "Filtrar",
        "action.save": "Guardar",
        "action.upload": "Subir",
        "action.mark_read": "Marcar leído",
        "action.dismiss": "Descartar",
        "action.scan": "Ejecutar revisión de recordatorios",
        "action.export": "Exportar CSV",
        "action.login": "Iniciar sesión",
        "action.ask": "Preguntar",
        "action.logout": "Cerrar sesión",
        "label.username": "Usuario",
        "label.password": "Contraseña",
        "label.name": "Nombre",
        "label.phone": "Teléfono",
        "label.email": "Correo",
        "label.status": "Estado",
        "label.bond_number": "Fianza #",
        "label.case_number": "Caso #",
        "label.amount": "Monto",
        "label.premium": "Prima",
        "label.court_date": "Fecha de Corte",
        "label.charges": "Cargos",
        "label.client": "Cliente",
        "label.category": "Categoría",
        "label.file": "Archivo",
        "label.size": "Tamaño",
        "label.uploaded": "Subido",
        "label.last_checkin": "Último registro",
        "label.question": "Pregunta",
        "label.language": "Idioma",
        "empty.none": "Nada que mostrar todavía.",
        "portal.invalid_login": "Usuario o contraseña inválidos.",
        "portal.logged_out": "Inicie sesión para ver el estado de su fianza.",
        "help.unavailable": "El asistente no está configurado. Comuníquese con la oficina de la agencia.",
    },
}


def translate(key: str, language: str = DEFAULT_LANGUAGE, fallback: Optional[str] = None) -> str:
    table = STRINGS.get(language) or STRINGS[DEFAULT_LANGUAGE]
    if key in table:
        return table[key]
    if key in STRINGS[DEFAULT_LANGUAGE]:
        return STRINGS[DEFAULT_LANGUAGE][key]
    return fallback if fallback is not None else key


def detect_language(
    cookie: Optional[str] = None,
    accept_language: Optional[str] = None,
    default: str = DEFAULT_LANGUAGE,
) -> str:
    """
    Cookie first, then the primary Accept-Language tag, then ``default``.
    """
    if cookie in SUPPORTED_LANGUAGES:
        return cookie
    primary = (accept_language or "").strip().lower()[:2]
    if primary in SUPPORTED_LANGUAGES:
        return primary
    return default if default in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE
