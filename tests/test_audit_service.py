from __future__ import annotations

import unittest

from sqlalchemy import select

from backoffice.models import AuthEvent
from backoffice.services.audit_service import list_audit_log, log_audit, log_auth_event
from tests.support import ADMIN_ID, MANAGER_ID, make_session, seed_staff


class AuditLogTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.addCleanup(self.db.close)
        self.staff = seed_staff(self.db)

    def test_entries_are_listed_newest_first_with_actor_names(self) -> None:
        log_audit(self.db, actor_user_id=self.staff[MANAGER_ID].id, action='FLOAT_OPENED', ip='10.0.0.5', metadata={'float_id': 'floatA_2026-03-02'})
        log_audit(self.db, actor_user_id=self.staff[ADMIN_ID].id, action='USER_CREATED', ip=None)
        log_audit(self.db, actor_user_id=None, action='AUTH_LOGOUT', ip=None)
        self.db.flush()

        entries = list_audit_log(self.db)

        self.assertEqual([entry['action'] for entry in entries], ['AUTH_LOGOUT', 'USER_CREATED', 'FLOAT_OPENED'])
        self.assertEqual(entries[0]['actor_name'], 'Unknown')
        self.assertEqual(entries[2]['actor_employee_id'], MANAGER_ID)
        self.assertEqual(entries[2]['metadata'], {'float_id': 'floatA_2026-03-02'})

    def test_filters_by_action_and_actor(self) -> None:
        log_audit(self.db, actor_user_id=self.staff[MANAGER_ID].id, action='FLOAT_OPENED', ip=None)
        log_audit(self.db, actor_user_id=self.staff[MANAGER_ID].id, action='FLOAT_CLOSED', ip=None)
        log_audit(self.db, actor_user_id=self.staff[ADMIN_ID].id, action='FLOAT_OPENED', ip=None)
        self.db.flush()

        opened = list_audit_log(self.db, action='float_opened')
        by_manager = list_audit_log(self.db, actor_employee_id=MANAGER_ID, limit=1)

        self.assertEqual(len(opened), 2)
        self.assertEqual([entry['action'] for entry in by_manager], ['FLOAT_CLOSED'])
        with self.assertRaises(ValueError):
            list_audit_log(self.db, limit=0)

    def test_refused_sign_in_is_stored_and_logged(self) -> None:
        with self.assertLogs('backoffice.services.audit_service', level='WARNING'):
            log_auth_event(
                self.db,
                attempted_username='nobody@gmail.com',
                success=False,
                failure_reason='UNKNOWN_USERNAME',
                ip='10.0.0.9',
                user_agent='pytest',
            )
        self.db.flush()

        event = self.db.execute(select(AuthEvent)).scalar_one()
        self.assertEqual(event.failure_reason, 'UNKNOWN_USERNAME')


if __name__ == '__main__':
    unittest.main()
