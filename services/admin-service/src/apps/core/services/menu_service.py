"""
Menu Service - Permission-filtered navigation menu

Handles:
- Pruning the navigation tree to what a user may see
- Menu item administration (create, update, delete, reorder)
- Default menu seeding

``filter_menu`` is a pure function: it reads a flat list of items and
returns a new tree of MenuNode objects without touching its input.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Set

from django.db import transaction

from apps.core.exceptions import NotFoundError, ValidationError
from apps.core.models import AuditLog, MenuItem, Permission
from apps.core.serializers import MenuItemWriteSerializer, MenuReorderSerializer
from apps.core.validation import parse_uuid, validate_input

from .audit_service import AuditOptions, AuditService
from .permission_service import PermissionService

logger = logging.getLogger(__name__)

MENU_MODULE = 'menu'


@dataclass(frozen=True)
class MenuEntry:
    """Flat snapshot of a menu item, as accepted by ``filter_menu``."""

    id: Any
    title: str
    href: Optional[str] = None
    icon: Optional[str] = None
    permission_id: Optional[str] = None
    is_active: bool = True
    order: int = 0
    parent_id: Any = None


@dataclass
class MenuNode:
    """Visible menu node with its visible children."""

    id: Any
    title: str
    href: Optional[str] = None
    icon: Optional[str] = None
    permission_id: Optional[str] = None
    order: int = 0
    children: List['MenuNode'] = field(default_factory=list)

    @property
    def is_group(self) -> bool:
        return not self.href

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['id'] = str(self.id)
        return data


def filter_menu(items: Iterable[Any], permissions: Iterable[str]) -> List[MenuNode]:
    """
    Build the menu tree a user with ``permissions`` may see.

    1. Inactive items are dropped.
    2. Items requiring a permission not in ``permissions`` are dropped.
    3. The tree is rebuilt from parent links. An item whose parent was
       dropped is dropped too (never re-parented to the root), and items
       caught in a parent-link cycle never reach a root, so they are
       dropped as well.
    4. Groups (no href) left without visible children are pruned bottom-up.

    Siblings are ordered by ``order``; ties keep their input order.

    Args:
        items: Flat iterable of MenuEntry snapshots or MenuItem rows
        permissions: Effective permission ids of the user

    Returns:
        Root level MenuNode list
    """
    permissions = set(permissions)

    visible = [
        item for item in items
        if item.is_active and (not item.permission_id or item.permission_id in permissions)
    ]

    children_of: Dict[Any, List[Any]] = {}
    for item in visible:
        children_of.setdefault(item.parent_id, []).append(item)

    reached: Set[Any] = set()

    def build(item, ancestors: Set[Any]) -> Optional[MenuNode]:
        if item.id in ancestors or item.id in reached:
            logger.warning(f"Menu item {item.id} appears twice in the tree; skipping")
            return None
        reached.add(item.id)

        path = ancestors | {item.id}
        children = []
        for child in sorted(children_of.get(item.id, []), key=lambda c: c.order):
            node = build(child, path)
            if node is not None:
                children.append(node)

        if not item.href and not children:
            return None

        return MenuNode(
            id=item.id,
            title=item.title,
            href=item.href or None,
            icon=item.icon,
            permission_id=item.permission_id,
            order=item.order,
            children=children,
        )

    roots = []
    for item in sorted(children_of.get(None, []), key=lambda i: i.order):
        node = build(item, set())
        if node is not None:
            roots.append(node)

    dropped = len(visible) - len(reached)
    if dropped:
        logger.debug(f"Dropped {dropped} menu items without a visible path to the root")

    return roots


class MenuService:
    """
    Navigation menu.

    Collaborators:
        permission_service: resolves the user's effective permissions
        audit_service: records menu administration
    """

    def __init__(
        self,
        permission_service: Optional[PermissionService] = None,
        audit_service: Optional[AuditService] = None
    ):
        self.permission_service = permission_service or PermissionService()
        self.audit_service = audit_service or AuditService()

    # ==================== RENDERING ====================

    def get_menu_for_user(self, user_id: Any) -> List[MenuNode]:
        """Menu tree visible to ``user_id``, resolved against live permissions."""
        permissions = self.permission_service.get_user_permissions(user_id)
        return filter_menu(self._ordered_items(), permissions)

    def get_all_menu_items(self) -> List[MenuItem]:
        return self._ordered_items()

    def _ordered_items(self) -> List[MenuItem]:
        return list(MenuItem.objects.order_by('order', 'created_at'))

    # ==================== ADMINISTRATION ====================

    @transaction.atomic
    def create_menu_item(
        self,
        title: str,
        href: str = None,
        icon: str = None,
        permission_id: str = None,
        parent_id: Any = None,
        order: int = 0,
        is_active: bool = True,
        created_by: Any = None
    ) -> MenuItem:
        """
        Create a menu item.

        Raises:
            ValidationError: If the permission or the parent does not exist
        """
        data = validate_input(MenuItemWriteSerializer, {
            'title': title,
            'href': href,
            'icon': icon,
            'permission_id': permission_id,
            'parent_id': parent_id,
            'order': order,
            'is_active': is_active,
        })
        self._validate_references(data)

        item = MenuItem.objects.create(**data)

        self.audit_service.log(
            action='menu_item_created',
            module=MENU_MODULE,
            area=AuditLog.Area.ADMIN,
            user_id=created_by,
            entity_type='MenuItem',
            entity_id=item.id,
            new_values=self._snapshot(item)
        )

        logger.info(f"Menu item created: {item.title}")
        return item

    @transaction.atomic
    def update_menu_item(self, item_id: Any, updated_by: Any = None, **fields) -> MenuItem:
        """
        Update the given fields of a menu item.

        Raises:
            NotFoundError: If the item does not exist
            ValidationError: If a reference is unknown or the new parent
                would make the item its own ancestor
        """
        item = self._get_item_or_raise(item_id)
        data = validate_input(MenuItemWriteSerializer, fields, partial=True)
        self._validate_references(data)

        if data.get('parent_id') is not None:
            self._check_not_ancestor(item, data['parent_id'])

        old_values = self._snapshot(item)
        for attr, value in data.items():
            setattr(item, attr, value)
        item.save()
        new_values = self._snapshot(item)

        changed = {k for k in new_values if new_values[k] != old_values[k]}
        if changed:
            self.audit_service.log_entity_change(
                AuditOptions(
                    action='menu_item_updated',
                    module=MENU_MODULE,
                    user_id=updated_by,
                    area=AuditLog.Area.ADMIN,
                    entity_type='MenuItem',
                    entity_id=item.id,
                ),
                old_values={k: old_values[k] for k in sorted(changed)},
                new_values={k: new_values[k] for k in sorted(changed)},
            )

        return item

    @transaction.atomic
    def delete_menu_item(self, item_id: Any, deleted_by: Any = None) -> None:
        """
        Delete a menu item together with its descendants.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self._get_item_or_raise(item_id)
        old_values = self._snapshot(item)
        entity_id = item.id
        item.delete()

        self.audit_service.log(
            action='menu_item_deleted',
            module=MENU_MODULE,
            area=AuditLog.Area.ADMIN,
            user_id=deleted_by,
            entity_type='MenuItem',
            entity_id=entity_id,
            old_values=old_values
        )

    @transaction.atomic
    def reorder_menu_items(self, orders: Iterable[Any], updated_by: Any = None) -> int:
        """
        Apply new sort orders in one transaction.

        Args:
            orders: ``(item_id, order)`` pairs or ``{'id', 'order'}`` dicts

        Returns:
            Number of items updated

        Raises:
            NotFoundError: If any item does not exist; nothing is applied
        """
        entries = []
        for entry in orders:
            if not isinstance(entry, dict):
                entry = dict(zip(('id', 'order'), entry))
            entries.append(validate_input(MenuReorderSerializer, entry))

        items = MenuItem.objects.in_bulk([entry['id'] for entry in entries])
        for entry in entries:
            if entry['id'] not in items:
                raise NotFoundError('MenuItem', entry['id'])
            items[entry['id']].order = entry['order']

        MenuItem.objects.bulk_update(list(items.values()), ['order'])

        self.audit_service.log(
            action='menu_reordered',
            module=MENU_MODULE,
            area=AuditLog.Area.ADMIN,
            user_id=updated_by,
            entity_type='MenuItem',
            new_values={str(entry['id']): entry['order'] for entry in entries}
        )
        return len(items)

    # ==================== SEEDING ====================

    @transaction.atomic
    def seed_default_menu(self) -> List[MenuItem]:
        """
        Create the default admin menu when no menu exists yet.

        Returns:
            List of created items (empty if a menu was already present)
        """
        if MenuItem.objects.exists():
            return []

        self.permission_service.seed_system_permissions()

        created = [
            MenuItem.objects.create(title='Dashboard', href='/admin/dashboard', icon='LayoutDashboard', order=1),
        ]
        group = MenuItem.objects.create(title='Administración', icon='Settings', order=2)
        created.append(group)

        children = [
            ('Usuarios', '/admin/users', 'Users', 'user:list'),
            ('Roles', '/admin/roles', 'Shield', 'role:list'),
            ('Permisos', '/admin/permissions', 'Key', 'permission:list'),
            ('Auditoria', '/admin/audit', 'FileText', 'audit:view'),
        ]
        for order, (title, href, icon, permission_id) in enumerate(children, start=1):
            created.append(MenuItem.objects.create(
                title=title,
                href=href,
                icon=icon,
                permission_id=permission_id,
                parent=group,
                order=order
            ))

        logger.info(f"Seeded {len(created)} menu items")
        return created

    # ==================== HELPERS ====================

    def _get_item_or_raise(self, item_id: Any) -> MenuItem:
        item_id = parse_uuid(item_id, 'item_id')
        try:
            return MenuItem.objects.get(id=item_id)
        except MenuItem.DoesNotExist:
            raise NotFoundError('MenuItem', item_id)

    def _validate_references(self, data: Dict[str, Any]) -> None:
        errors = {}
        permission_id = data.get('permission_id')
        if permission_id and not Permission.objects.filter(id=permission_id).exists():
            errors['permission_id'] = [f"Unknown permission: {permission_id}"]
        parent_id = data.get('parent_id')
        if parent_id and not MenuItem.objects.filter(id=parent_id).exists():
            errors['parent_id'] = [f"Unknown parent menu item: {parent_id}"]
        if errors:
            raise ValidationError(errors)

    def _check_not_ancestor(self, item: MenuItem, parent_id: Any) -> None:
        """Walk up from ``parent_id``; reaching ``item`` would close a cycle."""
        parents: Dict[Any, Any] = dict(MenuItem.objects.values_list('id', 'parent_id'))
        seen = set()
        current = parent_id
        while current is not None and current not in seen:
            if current == item.id:
                raise ValidationError({'parent_id': ["A menu item cannot be its own ancestor."]})
            seen.add(current)
            current = parents.get(current)

    @staticmethod
    def _snapshot(item: MenuItem) -> Dict[str, Any]:
        return {
            'title': item.title,
            'href': item.href,
            'icon': item.icon,
            'permission_id': item.permission_id,
            'parent_id': str(item.parent_id) if item.parent_id else None,
            'order': item.order,
            'is_active': item.is_active,
        }
