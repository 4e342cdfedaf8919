from decimal import Decimal

from django.core import mail
from django.test import TestCase, override_settings

from visas.exceptions import InvalidInput, NotFound, StateConflict
from visas.models import VisaApplication
from visas.services import applications, resubmission

from .factories import catalog_field, make_application, make_customer, make_product, make_traveler


@override_settings(VISAS_SEND_NOTICES_INLINE=True)
class ApplicationLifecycleTests(TestCase):
    def setUp(self):
        self.customer = make_customer()
        self.product = make_product(fields=[catalog_field(1, 'Name')])

    def test_create_application_computes_fees_per_traveler(self):
        app = applications.create_application(
            self.customer.id, self.product.id, 'French', '90-single', number_of_travelers=3)

        self.assertEqual(app.status, VisaApplication.DRAFT)
        self.assertTrue(app.application_number.startswith('VAP-'))
        self.assertEqual(app.government_fee, Decimal('150.00'))
        self.assertEqual(app.service_fee, Decimal('75.00'))
        self.assertEqual(app.total_amount, Decimal('225.00'))
        self.assertEqual(app.destination_country, 'Morocco')

    def test_create_application_rejects_bad_input(self):
        with self.assertRaises(InvalidInput):
            applications.create_application(self.customer.id, self.product.id, 'French', '180-multiple')
        with self.assertRaises(InvalidInput):
            applications.create_application(self.customer.id, self.product.id, 'French', '90-single', 0)
        with self.assertRaises(NotFound):
            applications.create_application(424242, self.product.id, 'French', '90-single')
        with self.assertRaises(NotFound):
            applications.create_application(self.customer.id, 424242, 'French', '90-single')

    def test_select_processing(self):
        app = make_application(customer=self.customer, product=self.product,
                               government_fee=Decimal('50'), service_fee=Decimal('25'))

        app = applications.select_processing(app.id, 'rush')

        self.assertEqual(app.processing_type, 'Rush')
        self.assertEqual(app.processing_fee, Decimal('40.00'))
        self.assertEqual(app.total_amount, Decimal('115.00'))

        with self.assertRaises(InvalidInput):
            applications.select_processing(app.id, 'Teleport')

    def test_submit_application(self):
        app = make_application(customer=self.customer, product=self.product, number_of_travelers=2)

        with self.assertRaises(InvalidInput):
            applications.submit_application(app.id)

        applications.select_processing(app.id, 'Standard')
        with self.assertRaises(InvalidInput):
            applications.submit_application(app.id)

        make_traveler(app)
        with self.captureOnCommitCallbacks(execute=True):
            app = applications.submit_application(app.id)

        self.assertEqual(app.status, VisaApplication.SUBMITTED)
        self.assertIsNotNone(app.submitted_at)
        self.assertEqual(len(mail.outbox), 1)

        with self.assertRaises(StateConflict):
            applications.submit_application(app.id)

    def test_only_drafts_can_be_removed(self):
        draft = make_application(customer=self.customer, product=self.product)
        submitted = make_application(customer=self.customer, product=self.product,
                                     status=VisaApplication.SUBMITTED)

        applications.remove_application(draft.id)

        self.assertFalse(VisaApplication.objects.filter(id=draft.id).exists())
        with self.assertRaises(StateConflict):
            applications.remove_application(submitted.id)
        with self.assertRaises(NotFound):
            applications.remove_application(draft.id)


@override_settings(VISAS_SEND_NOTICES_INLINE=True)
class UpdateStatusTests(TestCase):
    def setUp(self):
        self.application = make_application(
            product=make_product(fields=[catalog_field(1, 'Name')]),
            status=VisaApplication.SUBMITTED)

    def test_same_status_is_a_no_op(self):
        with self.captureOnCommitCallbacks(execute=True):
            app, changed = applications.update_status(self.application.id, 'submitted')

        self.assertFalse(changed)
        self.assertEqual(app.status, VisaApplication.SUBMITTED)
        self.assertEqual(len(mail.outbox), 0)

    def test_kanban_aliases(self):
        app, changed = applications.update_status(self.application.id, 'in_process')
        self.assertTrue(changed)
        self.assertEqual(app.status, VisaApplication.PROCESSING)

        app, changed = applications.update_status(self.application.id, 'processing')
        self.assertFalse(changed)

    def test_transition_table(self):
        applications.update_status(self.application.id, 'rejected', notes='Invalid passport')
        self.application.refresh_from_db()
        self.assertEqual(self.application.rejection_reason, 'Invalid passport')

        with self.assertRaises(StateConflict):
            applications.update_status(self.application.id, 'processing')

        draft = make_application(customer=self.application.customer,
                                 product=self.application.visa_product)
        with self.assertRaises(StateConflict):
            applications.update_status(draft.id, 'approved')

    def test_approval_and_completion(self):
        with self.captureOnCommitCallbacks(execute=True):
            app, _ = applications.update_status(self.application.id, 'approved')
        self.assertIsNotNone(app.approved_at)

        with self.captureOnCommitCallbacks(execute=True):
            app, _ = applications.update_status(self.application.id, 'completed')
        self.assertEqual(app.status, VisaApplication.COMPLETED)
        self.assertEqual(len(mail.outbox), 2)
        self.assertIn('complete', mail.outbox[1].subject)

    def test_unknown_status(self):
        with self.assertRaises(InvalidInput):
            applications.update_status(self.application.id, 'teleported')

    def test_leaving_resubmission_resets_the_workflow(self):
        resubmission.request_resubmission(self.application.id, {'requested_field_ids': [1]})

        app, changed = applications.update_status(self.application.id, 'under_review')

        self.assertTrue(changed)
        self.assertEqual(app.resubmission_requests, [])
        self.assertEqual(resubmission.get_active_resubmission_requests(app.id), [])

    @override_settings(VISAS_ADMIN_NOTIFICATION_EMAIL='ops@visa-portal.local')
    def test_admin_copy_of_notices(self):
        with self.captureOnCommitCallbacks(execute=True):
            applications.update_status(self.application.id, 'additional_info_required')

        self.assertEqual(sorted(m.to[0] for m in mail.outbox),
                         ['jane@example.com', 'ops@visa-portal.local'])
