"""Role taxonomy and display names shown in the console and in reports."""

ROLE_LABELS: dict[str, str] = {
    "admin": "Administrador",
    "security": "Segurança",
    "vigia": "Vigia",
    "porteiro": "Porteiro",
    "zelador": "Zelador",
    "rh": "RH",
    "supervisor": "Supervisor",
    "sdf": "SDF",
}

ROLES: tuple[str, ...] = tuple(ROLE_LABELS)

# Roles that do not go out on shifts; excluded from the operational headcount
_BACK_OFFICE_ROLES = frozenset({"admin", "rh"})


def role_display_name(role: str | None) -> str:
    if not role:
        return "Não informado"
    return ROLE_LABELS.get(role, role)


def is_operational_role(role: str | None) -> bool:
    return role not in _BACK_OFFICE_ROLES
