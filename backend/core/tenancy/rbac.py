import logging
from copy import deepcopy
from typing import Iterable

from django.conf import settings
from django.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ROLE_CITIZEN = "citizen"
ROLE_SOCIAL_PROJECT = "social_project"
ROLE_GOVERNMENT = "government"

VALID_ROLES = frozenset((ROLE_CITIZEN, ROLE_SOCIAL_PROJECT, ROLE_GOVERNMENT))
VALID_METHODS = frozenset(("GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE", "*"))

ALL_ROLES = VALID_ROLES
CITIZEN_ROLES = frozenset((ROLE_CITIZEN,))
PROJECT_ROLES = frozenset((ROLE_SOCIAL_PROJECT,))
GOVERNMENT_ROLES = frozenset((ROLE_GOVERNMENT,))
NO_ROLES = frozenset()


def build_role_matrix(
    *,
    read_roles=ALL_ROLES,
    post_roles=GOVERNMENT_ROLES,
    put_roles=GOVERNMENT_ROLES,
    patch_roles=GOVERNMENT_ROLES,
    delete_roles=NO_ROLES,
):
    return {
        "GET": frozenset(read_roles),
        "HEAD": frozenset(read_roles),
        "OPTIONS": frozenset(read_roles),
        "POST": frozenset(post_roles),
        "PUT": frozenset(put_roles),
        "PATCH": frozenset(patch_roles),
        "DELETE": frozenset(delete_roles),
    }


# Object-level rules (own city, own project, review state) live in the services;
# this matrix only decides which user types may reach an endpoint at all.
DEFAULT_RESOURCE_ROLE_MATRICES = {
    "wallet": build_role_matrix(post_roles=NO_ROLES, put_roles=NO_ROLES, patch_roles=NO_ROLES),
    "transactions": build_role_matrix(
        post_roles=NO_ROLES,
        put_roles=NO_ROLES,
        patch_roles=NO_ROLES,
    ),
    "issuance": build_role_matrix(read_roles=GOVERNMENT_ROLES),
    "transfers": build_role_matrix(read_roles=GOVERNMENT_ROLES),
    "projects": build_role_matrix(post_roles=PROJECT_ROLES | GOVERNMENT_ROLES),
    "project_registrations": build_role_matrix(
        read_roles=PROJECT_ROLES | GOVERNMENT_ROLES,
        post_roles=PROJECT_ROLES | GOVERNMENT_ROLES,
    ),
    "project_support": build_role_matrix(post_roles=CITIZEN_ROLES),
    "allocation_limits": build_role_matrix(),
    "conversions": build_role_matrix(
        read_roles=PROJECT_ROLES | GOVERNMENT_ROLES,
        post_roles=PROJECT_ROLES | GOVERNMENT_ROLES,
    ),
    "token_claims": build_role_matrix(
        read_roles=CITIZEN_ROLES | GOVERNMENT_ROLES,
        post_roles=CITIZEN_ROLES | GOVERNMENT_ROLES,
    ),
    "token_requests": build_role_matrix(
        read_roles=CITIZEN_ROLES | GOVERNMENT_ROLES,
        post_roles=CITIZEN_ROLES | GOVERNMENT_ROLES,
    ),
    "fund_requests": build_role_matrix(
        read_roles=PROJECT_ROLES | GOVERNMENT_ROLES,
        post_roles=PROJECT_ROLES | GOVERNMENT_ROLES,
    ),
    "audit": build_role_matrix(
        read_roles=GOVERNMENT_ROLES,
        post_roles=NO_ROLES,
        put_roles=NO_ROLES,
        patch_roles=NO_ROLES,
    ),
    "reconciliation": build_role_matrix(
        read_roles=GOVERNMENT_ROLES,
        post_roles=NO_ROLES,
        put_roles=NO_ROLES,
        patch_roles=NO_ROLES,
    ),
}

DEFAULT_CITY_ROLE_MATRIX = build_role_matrix()
KNOWN_RBAC_RESOURCES = frozenset(DEFAULT_RESOURCE_ROLE_MATRICES.keys())


def _normalize_roles(raw_roles: Iterable[str]) -> frozenset[str]:
    if not isinstance(raw_roles, (list, tuple, set, frozenset)):
        return frozenset()
    normalized = {str(role).lower() for role in raw_roles}
    return frozenset(role for role in normalized if role in VALID_ROLES)


def validate_rbac_overrides_schema(overrides) -> None:
    if overrides in (None, {}):
        return

    if not isinstance(overrides, dict):
        raise ValidationError("Role matrix overrides must be a JSON object (dictionary).")

    errors = {}
    for resource_key, method_map in overrides.items():
        resource_name = str(resource_key)
        resource_errors = []

        if resource_name not in KNOWN_RBAC_RESOURCES:
            resource_errors.append(
                f"Unknown resource '{resource_name}'. Allowed: {sorted(KNOWN_RBAC_RESOURCES)}"
            )

        if not isinstance(method_map, dict):
            resource_errors.append("Resource value must be an object of HTTP methods to role lists.")
            errors[resource_name] = resource_errors
            continue

        for method, raw_roles in method_map.items():
            method_name = str(method).upper()
            if method_name not in VALID_METHODS:
                resource_errors.append(
                    f"Method '{method_name}' is invalid. Allowed: {sorted(VALID_METHODS)}"
                )
                continue

            if not isinstance(raw_roles, list):
                resource_errors.append(f"Method '{method_name}' must contain a role list.")
                continue

            normalized_roles = _normalize_roles(raw_roles)
            if len(normalized_roles) != len(set(str(r).lower() for r in raw_roles)):
                resource_errors.append(
                    f"Method '{method_name}' contains invalid roles. "
                    f"Allowed roles: {sorted(VALID_ROLES)}"
                )

        if resource_errors:
            errors[resource_name] = resource_errors

    if errors:
        raise ValidationError(errors)


def _apply_overrides(matrices: dict, overrides: dict | None) -> dict:
    if not isinstance(overrides, dict):
        return matrices

    for resource_key, method_map in overrides.items():
        if not isinstance(method_map, dict):
            continue
        resource_matrix = matrices.setdefault(str(resource_key), {})
        for method, raw_roles in method_map.items():
            resource_matrix[str(method).upper()] = _normalize_roles(raw_roles)
    return matrices


def get_resource_role_matrices() -> dict:
    matrices = deepcopy(DEFAULT_RESOURCE_ROLE_MATRICES)

    overrides = getattr(settings, "CITY_ROLE_MATRICES", {})
    try:
        validate_rbac_overrides_schema(overrides)
        _apply_overrides(matrices, overrides)
    except ValidationError as exc:
        logger.warning("rbac.overrides.ignored errors=%s", exc.messages)

    return matrices


def get_role_matrix_for_resource(resource_key: str) -> dict:
    return get_resource_role_matrices().get(resource_key, DEFAULT_CITY_ROLE_MATRIX)


def role_can(role_matrix, role, method):
    allowed_roles = role_matrix.get(method, role_matrix.get("*", frozenset()))
    return role in allowed_roles


def resource_capabilities_for_role(role_matrix, role):
    can_get = role_can(role_matrix, role, "GET")
    return {
        "list": can_get,
        "retrieve": can_get,
        "create": role_can(role_matrix, role, "POST"),
        "update": role_can(role_matrix, role, "PUT"),
        "partial_update": role_can(role_matrix, role, "PATCH"),
        "delete": role_can(role_matrix, role, "DELETE"),
    }


def capabilities_for_role(role) -> dict:
    return {
        resource_name: resource_capabilities_for_role(role_matrix, role)
        for resource_name, role_matrix in sorted(get_resource_role_matrices().items())
    }
