"""
Tests for AuditService

Tests the audit trail including:
- Best-effort writing and ambient request enrichment
- Filtered, paginated querying
- Operation wrapping and entity change snapshots
- Statistics
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from apps.core.context import reset_current_request, set_current_request
from apps.core.exceptions import ValidationError
from apps.core.models import AuditLog
from apps.core.services import AuditOptions, get_audit_context


pytestmark = pytest.mark.django_db


class TestAuditLogging:
    """Tests for writing entries."""

    def test_log_creates_entry(self, audit_service, active_user):
        entry = audit_service.log(
            action='update',
            module='users',
            user_id=active_user.id,
            area=AuditLog.Area.ADMIN,
            entity_type='User',
            entity_id=active_user.id,
            new_values={'name': 'New'}
        )

        assert entry is not None
        assert entry.entity_id == str(active_user.id)
        assert entry.new_values == {'name': 'New'}
        assert entry.timestamp is not None

    def test_log_fills_ambient_request(self, audit_service, ambient_request):
        entry = audit_service.log(action='update', module='users')

        assert entry.ip_address == '203.0.113.7'
        assert entry.user_agent == 'pytest-browser/1.0'
        assert entry.request_id == 'req-test-123'

    def test_explicit_values_win_over_ambient(self, audit_service, ambient_request):
        entry = audit_service.log(action='update', module='users', ip_address='198.51.100.1')

        assert entry.ip_address == '198.51.100.1'

    def test_log_without_request_generates_request_id(self, audit_service):
        """Test background callers still get a correlation id, with a warning."""
        with patch('apps.core.services.audit_service.logger') as mock_logger:
            entry = audit_service.log(action='cleanup', module='system')

        assert entry.ip_address is None
        assert str(uuid.UUID(entry.request_id)) == entry.request_id
        mock_logger.warning.assert_called_once()

    def test_explicit_request_id_without_request(self, audit_service):
        with patch('apps.core.services.audit_service.logger') as mock_logger:
            entry = audit_service.log(action='cleanup', module='system', request_id='job-42')

        assert entry.request_id == 'job-42'
        mock_logger.warning.assert_not_called()

    def test_failed_write_returns_none(self, audit_service):
        """Test a store failure is reported but never raised."""
        with patch('apps.core.services.audit_service.AuditLog.objects.create', side_effect=DatabaseError('down')), \
                patch('apps.core.services.audit_service.logger') as mock_logger:
            result = audit_service.log(action='update', module='users')

        assert result is None
        mock_logger.error.assert_called_once()
        assert 'down' in mock_logger.error.call_args[0][0]


class TestAuditContext:
    """Tests for request context derivation."""

    def test_context_from_request(self, rf):
        request = rf.get('/', HTTP_X_FORWARDED_FOR='192.0.2.1, 10.0.0.1', HTTP_USER_AGENT='agent')
        request.request_id = 'abc'

        context = get_audit_context(request)

        assert context.request_id == 'abc'
        assert context.ip_address == '192.0.2.1'
        assert context.user_agent == 'agent'

    def test_context_from_real_ip_header(self, rf):
        request = rf.get('/', HTTP_X_REAL_IP='192.0.2.9')

        assert get_audit_context(request).ip_address == '192.0.2.9'

    def test_forged_forwarded_header_ignored(self, rf):
        request = rf.get('/', HTTP_X_FORWARDED_FOR='x, 10.0.0.1', REMOTE_ADDR='192.0.2.5')

        assert get_audit_context(request).ip_address == '192.0.2.5'

    def test_no_valid_address(self, rf):
        request = rf.get('/', HTTP_X_FORWARDED_FOR='not-an-ip', HTTP_X_REAL_IP='nope', REMOTE_ADDR='')

        assert get_audit_context(request).ip_address is None

    def test_forged_header_keeps_audit_entry(self, audit_service, rf):
        """Test a bogus client address never reaches the inet column."""
        request = rf.get('/', HTTP_X_FORWARDED_FOR='x', REMOTE_ADDR='192.0.2.5')
        request.request_id = 'req-forged'

        token = set_current_request(request)
        try:
            entry = audit_service.log(action='update', module='users')
        finally:
            reset_current_request(token)

        assert entry is not None
        assert entry.ip_address == '192.0.2.5'

    def test_context_without_request_warns(self):
        with patch('apps.core.services.audit_service.logger') as mock_logger:
            context = get_audit_context()

        mock_logger.warning.assert_called_once()
        assert len(context.request_id) == 36
        assert context.ip_address is None
        assert context.user_agent is None

    def test_context_uses_ambient_request(self, ambient_request):
        assert get_audit_context().request_id == 'req-test-123'


class TestAuditQuery:
    """Tests for querying the trail."""

    def test_pagination(self, audit_service, create_audit_entries):
        create_audit_entries(15)

        first = audit_service.query(limit=10)
        second = audit_service.query(limit=10, offset=10)

        assert first.total == 15
        assert first.count == 10
        assert first.has_more is True
        assert second.count == 5
        assert second.has_more is False

    def test_newest_first(self, audit_service, create_audit_entries):
        create_audit_entries(5)

        result = audit_service.query()

        assert [e.entity_id for e in result.entries] == ['4', '3', '2', '1', '0']
        timestamps = [e.timestamp for e in result.entries]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_default_and_capped_limit(self, audit_service, create_audit_entries):
        create_audit_entries(2)

        assert audit_service.query().limit == 50
        assert audit_service.query(limit=10_000).limit == 500

    def test_filters_combine(self, audit_service, create_audit_entries, active_user):
        create_audit_entries(3, module='users', user_id=active_user.id)
        create_audit_entries(2, module='users')
        create_audit_entries(4, module='roles', user_id=active_user.id)

        result = audit_service.query(module='users', user_id=active_user.id)

        assert result.total == 3
        assert all(e.module == 'users' and e.user_id == active_user.id for e in result.entries)

    def test_date_range_is_inclusive(self, audit_service, create_audit_entries):
        entries = create_audit_entries(8)

        result = audit_service.query(
            start_date=entries[2].timestamp,
            end_date=entries[5].timestamp
        )

        assert result.total == 4
        assert {e.entity_id for e in result.entries} == {'2', '3', '4', '5'}

    def test_filters_dict_argument(self, audit_service, create_audit_entries):
        create_audit_entries(2, action='login')
        create_audit_entries(1, action='logout')

        assert audit_service.query({'action': 'login'}).total == 2

    def test_unknown_filter_rejected(self, audit_service):
        with pytest.raises(ValidationError) as exc_info:
            audit_service.query(colour='red')

        assert 'colour' in exc_info.value.errors

    def test_invalid_pagination_rejected(self, audit_service):
        with pytest.raises(ValidationError):
            audit_service.query(limit=0)

        with pytest.raises(ValidationError):
            audit_service.query(offset=-1)

    def test_invalid_filter_value_rejected(self, audit_service):
        with pytest.raises(ValidationError):
            audit_service.query(user_id='not-a-uuid')

    def test_entity_logs(self, audit_service, create_audit_entries):
        create_audit_entries(4)

        result = audit_service.get_entity_logs('User', 2)

        assert result.total == 1
        assert result.entries[0].entity_id == '2'

    def test_request_logs_in_write_order(self, audit_service, ambient_request):
        first = audit_service.log(action='first', module='users')
        audit_service.log(action='second', module='users')
        AuditLog.objects.filter(id=first.id).update(timestamp=first.timestamp - timedelta(seconds=1))
        AuditLog.objects.create(action='unrelated', module='users', request_id='other')

        entries = audit_service.get_request_logs('req-test-123')

        assert [e.action for e in entries] == ['first', 'second']


class TestAuditWrapping:
    """Tests for wrap_operation, audited and log_entity_change."""

    def test_wrap_operation_success(self, audit_service):
        options = AuditOptions(action='export', module='users', metadata={'format': 'csv'})

        result = audit_service.wrap_operation(options, lambda: 42)

        assert result == 42
        entry = AuditLog.objects.get(action='export')
        assert entry.metadata['success'] is True
        assert entry.metadata['format'] == 'csv'
        assert isinstance(entry.metadata['duration'], int)
        assert entry.metadata['duration'] >= 0

    def test_wrap_operation_failure_reraises(self, audit_service):
        def failing():
            raise ValueError('boom')

        with pytest.raises(ValueError, match='boom'):
            audit_service.wrap_operation(AuditOptions(action='export', module='users'), failing)

        entry = AuditLog.objects.get(action='export')
        assert entry.metadata['success'] is False
        assert entry.metadata['error'] == 'boom'

    def test_audited_decorator(self, audit_service):
        @audit_service.audited('purge', 'system', area=AuditLog.Area.SYSTEM)
        def purge(days):
            return days * 2

        assert purge(3) == 6
        entry = AuditLog.objects.get(action='purge')
        assert entry.area == AuditLog.Area.SYSTEM
        assert entry.metadata['success'] is True

    def test_log_entity_change_stores_values_exactly(self, audit_service, active_user):
        old_values = {'name': 'Old', 'tags': ['a'], 'nested': {'x': 1}}
        new_values = {'name': 'New', 'tags': [], 'nested': {'x': 2}}
        options = AuditOptions(
            action='update',
            module='users',
            entity_type='User',
            entity_id=active_user.id
        )

        entry = audit_service.log_entity_change(options, old_values, new_values)

        entry.refresh_from_db()
        assert entry.old_values == old_values
        assert entry.new_values == new_values
        assert entry.metadata is None


class TestAuditStats:
    """Tests for aggregate statistics."""

    def test_stats(self, audit_service, create_audit_entries, active_user):
        create_audit_entries(3, action='login', module='auth', user_id=active_user.id)
        create_audit_entries(2, action='update', module='users')

        stats = audit_service.get_stats()

        assert stats['total'] == 5
        assert stats['action_breakdown'] == {'login': 3, 'update': 2}
        assert stats['module_breakdown'] == {'auth': 3, 'users': 2}
        assert stats['top_users'] == [{
            'user_id': str(active_user.id),
            'email': 'active@test.com',
            'name': 'Active User',
            'count': 3,
        }]

    def test_stats_date_range(self, audit_service, create_audit_entries):
        entries = create_audit_entries(5)

        stats = audit_service.get_stats(start_date=entries[3].timestamp - timedelta(microseconds=1))

        assert stats['total'] == 2
