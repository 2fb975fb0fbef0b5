"""
Role checks based on Django auth groups.

Application roles are plain groups. A superuser or staff account that
belongs to none of them is treated as an administrator.
"""
from rest_framework.permissions import BasePermission

ROLE_CALLER = 'Caller'
ROLE_DELIVERY = 'Delivery'
ROLE_SUPERVISOR = 'Supervisor'
ROLE_ADMIN = 'Admin'

APPLICATION_ROLES = [ROLE_CALLER, ROLE_DELIVERY, ROLE_SUPERVISOR, ROLE_ADMIN]

# Presence rows store the role as a short slug
ROLE_SLUGS = {
    ROLE_CALLER: 'caller',
    ROLE_DELIVERY: 'delivery',
    ROLE_SUPERVISOR: 'supervisor',
    ROLE_ADMIN: 'admin',
}


def get_user_roles(user):
    """Return the application roles held by ``user``"""
    if not user or not user.is_authenticated:
        return []
    roles = [name for name in user.groups.values_list('name', flat=True) if name in APPLICATION_ROLES]
    if not roles and (user.is_superuser or user.is_staff):
        return [ROLE_ADMIN]
    return roles


def has_role(user, *roles):
    """True if ``user`` holds any of ``roles``; Admin always passes"""
    user_roles = get_user_roles(user)
    if ROLE_ADMIN in user_roles:
        return True
    return any(role in user_roles for role in roles)


def is_admin_user(user):
    return ROLE_ADMIN in get_user_roles(user)


def is_supervisor(user):
    return has_role(user, ROLE_SUPERVISOR)


def primary_role(user):
    """Highest-privilege role, used for display and presence"""
    user_roles = get_user_roles(user)
    for role in (ROLE_ADMIN, ROLE_SUPERVISOR, ROLE_CALLER, ROLE_DELIVERY):
        if role in user_roles:
            return role
    return None


class IsSupervisor(BasePermission):
    message = 'Supervisor or admin role required.'

    def has_permission(self, request, view):
        return has_role(request.user, ROLE_SUPERVISOR)


class IsAdmin(BasePermission):
    message = 'Admin role required.'

    def has_permission(self, request, view):
        return is_admin_user(request.user)


class IsCaller(BasePermission):
    message = 'Caller role required.'

    def has_permission(self, request, view):
        return has_role(request.user, ROLE_CALLER, ROLE_SUPERVISOR)


class IsDelivery(BasePermission):
    message = 'Delivery role required.'

    def has_permission(self, request, view):
        return has_role(request.user, ROLE_DELIVERY, ROLE_SUPERVISOR)
