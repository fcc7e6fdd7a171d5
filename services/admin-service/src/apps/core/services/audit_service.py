"""
Audit Service - Append-only record of system actions

Handles:
- Writing audit entries (never fails the caller's operation)
- Filtered, paginated querying of the audit trail
- Entity and request scoped lookups, aggregate statistics
- Wrapping operations so their outcome and duration are recorded
- Capturing before/after snapshots of entity changes
"""

import functools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from django.conf import settings
from django.db import transaction
from django.db.models import Count
from django.http import HttpRequest

from apps.core.context import get_client_ip, get_current_request, get_request_id
from apps.core.exceptions import ValidationError
from apps.core.filters import AuditLogFilter
from apps.core.models import AuditLog, User
from apps.core.serializers import AuditPaginationSerializer

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class AuditContext:
    """Request correlation data attached to audit entries."""

    request_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class AuditOptions:
    """Describes the action recorded by ``wrap_operation`` and ``log_entity_change``."""

    action: str
    module: str
    user_id: Optional[Any] = None
    area: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuditQueryResult:
    entries: List[AuditLog]
    total: int
    count: int
    limit: int
    offset: int
    has_more: bool


def get_audit_context(request: Optional[HttpRequest] = None) -> AuditContext:
    """
    Derive audit context from ``request`` or the ambient request.

    Never raises: without a request (background jobs, shell) the context
    carries only a freshly generated request id.
    """
    request = request or get_current_request()
    if request is None:
        logger.warning("No request context available for audit entry; generating request id")
        return AuditContext(request_id=str(uuid.uuid4()))

    try:
        return AuditContext(
            request_id=get_request_id(request),
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT') or None,
        )
    except Exception as e:
        logger.warning(f"Failed to derive audit context: {e}")
        return AuditContext(request_id=str(uuid.uuid4()))


class AuditService:
    """
    Compliance audit trail.

    ``log`` is best-effort: a failed write is reported through the logger and
    never propagated. All other failures (query errors, wrapped operation
    errors) propagate to the caller.
    """

    def __init__(self):
        self._load_settings()

    def _load_settings(self):
        """Load settings from Django settings"""
        audit_settings = getattr(settings, 'AUDIT_SETTINGS', {})
        self.DEFAULT_LIMIT = audit_settings.get('DEFAULT_LIMIT', 50)
        self.MAX_LIMIT = audit_settings.get('MAX_LIMIT', 500)
        self.REQUEST_LOGS_LIMIT = audit_settings.get('REQUEST_LOGS_LIMIT', 100)
        self.TOP_USERS_LIMIT = audit_settings.get('TOP_USERS_LIMIT', 10)

    # ==================== WRITING ====================

    def log(
        self,
        action: str,
        module: str,
        user_id: Any = None,
        area: str = None,
        entity_type: str = None,
        entity_id: Any = None,
        old_values: Dict = None,
        new_values: Dict = None,
        ip_address: str = None,
        user_agent: str = None,
        request_id: str = None,
        metadata: Dict = None
    ) -> Optional[AuditLog]:
        """
        Append one audit entry.

        Missing ip_address, user_agent and request_id are filled from the
        ambient request when there is one. Without a request and without an
        explicit request_id, a fresh correlation id is generated.

        Returns:
            The created entry, or None if the write failed
        """
        try:
            request = get_current_request()
            if request is not None or request_id is None:
                context = get_audit_context(request)
                ip_address = ip_address or context.ip_address
                user_agent = user_agent or context.user_agent
                request_id = request_id or context.request_id

            # Savepoint so a failed insert does not poison an enclosing transaction
            with transaction.atomic():
                entry = AuditLog.objects.create(
                    action=action,
                    module=module,
                    user_id=user_id,
                    area=area,
                    entity_type=entity_type,
                    entity_id=str(entity_id) if entity_id is not None else None,
                    old_values=old_values,
                    new_values=new_values,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    request_id=request_id,
                    metadata=metadata,
                )
            return entry
        except Exception as e:
            logger.error(
                f"Failed to write audit log entry: {e}",
                exc_info=True,
                extra={'action': action, 'module': module, 'entity_type': entity_type}
            )
            return None

    def wrap_operation(self, options: AuditOptions, operation: Callable[[], T]) -> T:
        """
        Run ``operation`` and record its outcome.

        On success one entry is logged with ``metadata.success=True`` and the
        duration in milliseconds. On failure the entry carries
        ``success=False`` and the error message, then the original exception
        is re-raised unchanged.
        """
        context = get_audit_context()
        started = time.monotonic()
        try:
            result = operation()
        except Exception as e:
            self.log(
                **self._entry_kwargs(options, context),
                metadata={
                    **options.metadata,
                    'success': False,
                    'error': str(e),
                    'duration': self._elapsed_ms(started),
                }
            )
            raise

        self.log(
            **self._entry_kwargs(options, context),
            metadata={
                **options.metadata,
                'success': True,
                'duration': self._elapsed_ms(started),
            }
        )
        return result

    def audited(self, action: str, module: str, **option_kwargs):
        """
        Decorator form of ``wrap_operation``.

        Usage:
            @audit_service.audited('export', 'users', area='admin')
            def export_users():
                ...
        """
        def decorator(func):
            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                options = AuditOptions(action=action, module=module, **option_kwargs)
                return self.wrap_operation(options, lambda: func(*args, **kwargs))
            return wrapper
        return decorator

    def log_entity_change(
        self,
        options: AuditOptions,
        old_values: Dict,
        new_values: Dict
    ) -> Optional[AuditLog]:
        """Record before/after snapshots of an entity update, stored as given."""
        context = get_audit_context()
        return self.log(
            **self._entry_kwargs(options, context),
            old_values=old_values,
            new_values=new_values,
            metadata=options.metadata or None,
        )

    def _entry_kwargs(self, options: AuditOptions, context: AuditContext) -> Dict[str, Any]:
        return {
            'action': options.action,
            'module': options.module,
            'user_id': options.user_id,
            'area': options.area,
            'entity_type': options.entity_type,
            'entity_id': options.entity_id,
            'ip_address': context.ip_address,
            'user_agent': context.user_agent,
            'request_id': context.request_id,
        }

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    # ==================== QUERYING ====================

    def query(self, filters: Dict[str, Any] = None, **kwargs) -> AuditQueryResult:
        """
        Query the audit trail.

        Filters (all optional, combined with AND): user_id, module, action,
        area, entity_type, entity_id, request_id, start_date, end_date
        (inclusive range on timestamp). Pagination: limit (default 50,
        capped at MAX_LIMIT) and offset (default 0).

        Returns:
            AuditQueryResult ordered newest first

        Raises:
            ValidationError: If a filter or pagination value is malformed
        """
        params = {**(filters or {}), **kwargs}

        pagination = AuditPaginationSerializer(data={
            'limit': params.pop('limit', None),
            'offset': params.pop('offset', None),
        })
        if not pagination.is_valid():
            raise ValidationError(pagination.errors)

        limit = min(pagination.validated_data.get('limit') or self.DEFAULT_LIMIT, self.MAX_LIMIT)
        offset = pagination.validated_data.get('offset') or 0

        unknown = set(params) - set(AuditLogFilter.base_filters)
        if unknown:
            raise ValidationError({name: ['Unknown filter.'] for name in sorted(unknown)})

        filterset = AuditLogFilter(
            data={k: v for k, v in params.items() if v is not None},
            queryset=AuditLog.objects.all()
        )
        if not filterset.is_valid():
            raise ValidationError(filterset.errors)

        queryset = filterset.qs.order_by('-timestamp')
        total = queryset.count()
        entries = list(queryset[offset:offset + limit])

        return AuditQueryResult(
            entries=entries,
            total=total,
            count=len(entries),
            limit=limit,
            offset=offset,
            has_more=offset + len(entries) < total,
        )

    def get_entity_logs(self, entity_type: str, entity_id: Any, limit: int = None, offset: int = 0) -> AuditQueryResult:
        """History of a single entity, newest first."""
        return self.query(entity_type=entity_type, entity_id=str(entity_id), limit=limit, offset=offset)

    def get_request_logs(self, request_id: str) -> List[AuditLog]:
        """Every entry written while serving one request, in write order."""
        return list(
            AuditLog.objects.filter(request_id=request_id).order_by('timestamp')[:self.REQUEST_LOGS_LIMIT]
        )

    def get_stats(self, start_date=None, end_date=None) -> Dict[str, Any]:
        """
        Aggregate counts over an optional timestamp range.

        Returns:
            Dict with total, action_breakdown, module_breakdown and top_users
        """
        filterset = AuditLogFilter(
            data={k: v for k, v in {'start_date': start_date, 'end_date': end_date}.items() if v is not None},
            queryset=AuditLog.objects.all()
        )
        if not filterset.is_valid():
            raise ValidationError(filterset.errors)
        queryset = filterset.qs

        action_breakdown = {
            row['action']: row['count']
            for row in queryset.values('action').annotate(count=Count('id')).order_by('-count')
        }
        module_breakdown = {
            row['module']: row['count']
            for row in queryset.values('module').annotate(count=Count('id')).order_by('-count')
        }

        top_rows = list(
            queryset.filter(user_id__isnull=False)
            .values('user_id')
            .annotate(count=Count('id'))
            .order_by('-count')[:self.TOP_USERS_LIMIT]
        )
        users = User.objects.in_bulk([row['user_id'] for row in top_rows])
        top_users = []
        for row in top_rows:
            user = users.get(row['user_id'])
            top_users.append({
                'user_id': str(row['user_id']),
                'email': user.email if user else None,
                'name': user.name if user else None,
                'count': row['count'],
            })

        return {
            'total': queryset.count(),
            'action_breakdown': action_breakdown,
            'module_breakdown': module_breakdown,
            'top_users': top_users,
        }
