from rest_framework.permissions import BasePermission

from tenancy.rbac import DEFAULT_CITY_ROLE_MATRIX, get_role_matrix_for_resource


def _is_city_member(user, city) -> bool:
    if not user or not user.is_authenticated or city is None:
        return False
    if user.is_superuser:
        return True
    return user.is_active and user.city_id == city.id


class IsCityMember(BasePermission):
    message = "User does not belong to the current city."

    def has_permission(self, request, view):
        return _is_city_member(request.user, getattr(request, "city", None))


class IsCityRoleAllowed(BasePermission):
    message = "User type is not allowed for this action in the current city."

    def has_permission(self, request, view):
        user = request.user
        if not _is_city_member(user, getattr(request, "city", None)):
            return False

        if user.is_superuser:
            return True

        role_matrix = getattr(view, "city_role_matrix", None)
        if role_matrix is None:
            resource_key = getattr(view, "city_resource_key", None)
            if resource_key:
                role_matrix = get_role_matrix_for_resource(resource_key)
            else:
                role_matrix = DEFAULT_CITY_ROLE_MATRIX

        allowed_roles = role_matrix.get(request.method, role_matrix.get("*", frozenset()))
        return user.user_type in allowed_roles
