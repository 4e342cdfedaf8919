from django.core import mail
from django.test import TestCase, override_settings

from visas.exceptions import InvalidInput, NotFound, StateConflict
from visas.models import VisaApplication
from visas.services import adhoc, catalog, resubmission, responses

from .factories import catalog_field, make_application, make_product, make_traveler, with_passport


@override_settings(VISAS_SEND_NOTICES_INLINE=True)
class RequestResubmissionTests(TestCase):
    def setUp(self):
        self.product = make_product(fields=[
            catalog_field(101, 'Full name', is_required=True),
            catalog_field(102, 'City'),
        ])
        self.application = make_application(
            product=self.product, status=VisaApplication.SUBMITTED)
        with_passport(self.application.customer)

    def test_only_in_process_applications(self):
        draft = make_application(
            customer=self.application.customer, product=self.product)

        with self.assertRaises(StateConflict):
            resubmission.request_resubmission(draft.id, {'requested_field_ids': [101]})

    def test_request_is_stored_with_canonical_ids(self):
        with self.captureOnCommitCallbacks(execute=True):
            created = resubmission.request_resubmission(self.application.id, {
                'requested_field_ids': ['101', 101, '_passport_number'],
                'note': 'Name does not match the passport',
            })

        self.application.refresh_from_db()
        self.assertEqual(self.application.status, VisaApplication.RESUBMISSION)
        request = self.application.resubmission_requests[0]
        self.assertEqual(request['field_ids'], [101, '_passport_number'])
        self.assertEqual(request['target'], VisaApplication.TARGET_APPLICATION)
        self.assertIsNone(request['fulfilled_at'])
        self.assertEqual(request['id'], created[0]['id'])

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(self.application.application_number, mail.outbox[0].subject)
        self.assertIn(f"/track/{self.application.application_number}", mail.outbox[0].body)

    def test_unknown_or_empty_field_lists_are_rejected(self):
        with self.assertRaises(InvalidInput):
            resubmission.request_resubmission(self.application.id, {'requested_field_ids': [999]})
        with self.assertRaises(InvalidInput):
            resubmission.request_resubmission(self.application.id, {'requested_field_ids': [-1]})
        with self.assertRaises(InvalidInput):
            resubmission.request_resubmission(self.application.id, {'note': 'nothing named'})
        with self.assertRaises(InvalidInput):
            resubmission.request_resubmission(self.application.id, {'requested_field_ids': ['abc']})

        self.application.refresh_from_db()
        self.assertEqual(self.application.status, VisaApplication.SUBMITTED)

    def test_unknown_traveler(self):
        with self.assertRaises(NotFound):
            resubmission.request_resubmission(self.application.id, {
                'target': 'traveler', 'traveler_id': 555, 'requested_field_ids': [101]})

    def test_custom_fields_are_minted_in_scope(self):
        traveler = make_traveler(self.application)

        created = resubmission.request_resubmission(self.application.id, {
            'target': 'traveler',
            'traveler_id': traveler.id,
            'custom_fields': [{'field_type': 'text', 'question': 'Employer'}],
        })

        self.assertEqual(created[0]['field_ids'], [-1])
        self.application.refresh_from_db()
        self.assertEqual(self.application.admin_requested_fields[0]['traveler_id'], traveler.id)
        self.assertEqual(self.application.admin_field_counter, -1)

    def test_requests_accumulate(self):
        resubmission.request_resubmission(self.application.id, {'requested_field_ids': [101]})
        resubmission.request_resubmission(self.application.id, {'requested_field_ids': [102]})

        active = resubmission.get_active_resubmission_requests(self.application.id)

        self.assertEqual(len(active), 2)
        self.assertEqual(active[0]['fields'], [{'id': 101, 'question': 'Full name'}])

    def test_legacy_fields_are_read_as_a_request(self):
        VisaApplication.objects.filter(id=self.application.id).update(
            status=VisaApplication.RESUBMISSION,
            resubmission_target='application',
            requested_field_ids=['102'],
        )

        active = resubmission.get_active_resubmission_requests(self.application.id)

        self.assertEqual(len(active), 1)
        self.assertTrue(active[0]['legacy'])
        self.assertEqual(active[0]['field_ids'], [102])

    def test_new_request_absorbs_the_legacy_one(self):
        VisaApplication.objects.filter(id=self.application.id).update(
            resubmission_target='application', requested_field_ids=[102])

        resubmission.request_resubmission(self.application.id, {'requested_field_ids': [101]})

        self.application.refresh_from_db()
        self.assertIsNone(self.application.resubmission_target)
        self.assertEqual(
            [r['field_ids'] for r in self.application.resubmission_requests], [[102], [101]])


@override_settings(VISAS_SEND_NOTICES_INLINE=True)
class FulfillmentTests(TestCase):
    def setUp(self):
        self.product = make_product(fields=[
            catalog_field(201, 'Photo caption'),
            catalog_field(202, 'Hotel name'),
        ])
        self.application = make_application(
            product=self.product, status=VisaApplication.SUBMITTED, number_of_travelers=3)
        with_passport(self.application.customer)
        self.traveler5 = with_passport(make_traveler(self.application, first_name='Five'))
        self.traveler6 = with_passport(make_traveler(self.application, first_name='Six'))

    def test_adhoc_request_is_fulfilled_by_one_submission(self):
        created = resubmission.request_resubmission(self.application.id, {
            'target': 'traveler',
            'traveler_id': self.traveler5.id,
            'custom_fields': [{'field_type': 'text', 'question': 'Correct your surname'}],
        })
        self.assertEqual(created[0]['field_ids'], [-1])

        with self.captureOnCommitCallbacks(execute=True):
            result = responses.submit_responses(
                self.application.id, {-1: 'corrected value'}, traveler_id=self.traveler5.id)

        self.assertEqual(result['status'], VisaApplication.PROCESSING)
        self.assertEqual(result['fulfilled_requests'], [created[0]['id']])
        self.application.refresh_from_db()
        self.assertEqual(self.application.status, VisaApplication.PROCESSING)
        self.assertEqual(self.application.resubmission_requests, [])
        self.assertTrue(any('received' in m.subject.lower() for m in mail.outbox))

    def test_independent_traveler_requests(self):
        resubmission.request_resubmission(self.application.id, [
            {'target': 'traveler', 'traveler_id': self.traveler5.id, 'requested_field_ids': [201]},
            {'target': 'traveler', 'traveler_id': self.traveler6.id, 'requested_field_ids': [202]},
        ])

        first = responses.submit_responses(
            self.application.id, [{'field_id': 201, 'value': 'Me'}], traveler_id=self.traveler5.id)

        self.assertEqual(first['status'], VisaApplication.RESUBMISSION)
        self.application.refresh_from_db()
        done, still_open = self.application.resubmission_requests
        self.assertIsNotNone(done['fulfilled_at'])
        self.assertIsNone(still_open['fulfilled_at'])

        second = responses.submit_responses(
            self.application.id, [{'field_id': '202', 'value': 'Hilton'}], traveler_id=self.traveler6.id)

        self.assertEqual(second['status'], VisaApplication.PROCESSING)

    def test_answers_given_before_the_request_do_not_count(self):
        self.application.field_responses = {
            '201': {'value': 'old', 'file_path': None, 'file_name': None,
                    'file_size': None, 'submitted_at': '2000-01-01T00:00:00+00:00'},
        }
        self.application.save()
        resubmission.request_resubmission(self.application.id, {'requested_field_ids': [201, 202]})

        result = responses.submit_responses(self.application.id, {202: 'Ritz'})

        self.assertEqual(result['status'], VisaApplication.RESUBMISSION)
        self.assertEqual(result['fulfilled_requests'], [])

    def test_request_for_traveler_one_is_application_level(self):
        resubmission.request_resubmission(self.application.id, {
            'target': 'traveler', 'traveler_id': None, 'requested_field_ids': [201]})

        # Another traveler's submission does not touch it
        other = responses.submit_responses(
            self.application.id, {201: 'x'}, traveler_id=self.traveler5.id)
        self.assertEqual(other['status'], VisaApplication.RESUBMISSION)
        self.assertEqual(other['count'], 0)

        own = responses.submit_responses(self.application.id, {201: 'Me'})
        self.assertEqual(own['status'], VisaApplication.PROCESSING)

    def test_fulfillment_is_idempotent(self):
        resubmission.request_resubmission(self.application.id, [
            {'requested_field_ids': [201]},
            {'target': 'traveler', 'traveler_id': self.traveler6.id, 'requested_field_ids': [202]},
        ])

        responses.submit_responses(self.application.id, {201: 'Me'})
        self.application.refresh_from_db()
        first_stamp = self.application.resubmission_requests[0]['fulfilled_at']

        again = responses.submit_responses(self.application.id, {201: 'Me again'})

        self.assertEqual(again['fulfilled_requests'], [])
        self.application.refresh_from_db()
        self.assertEqual(self.application.resubmission_requests[0]['fulfilled_at'], first_stamp)
        self.assertEqual(self.application.status, VisaApplication.RESUBMISSION)

    def test_legacy_request_is_fulfilled_directly(self):
        VisaApplication.objects.filter(id=self.application.id).update(
            status=VisaApplication.RESUBMISSION,
            resubmission_target='traveler',
            resubmission_traveler_id=self.traveler6.id,
            requested_field_ids=[202],
        )

        result = responses.submit_responses(
            self.application.id, {202: 'Hilton'}, traveler_id=self.traveler6.id)

        self.assertEqual(result['status'], VisaApplication.PROCESSING)
        self.assertEqual(result['fulfilled_requests'], ['legacy'])
        self.application.refresh_from_db()
        self.assertIsNone(self.application.resubmission_target)
        self.assertIsNone(self.application.requested_field_ids)

    def test_additional_info_without_requests_resumes_on_submit(self):
        VisaApplication.objects.filter(id=self.application.id).update(
            status=VisaApplication.ADDITIONAL_INFO_REQUIRED)

        with self.captureOnCommitCallbacks(execute=True):
            result = responses.submit_responses(self.application.id, {201: 'Me', 202: 'Ritz'})

        self.assertEqual(result['status'], VisaApplication.PROCESSING)
        self.assertEqual(len(mail.outbox), 1)

    def test_removed_adhoc_field_no_longer_blocks_the_request(self):
        resubmission.request_resubmission(self.application.id, {
            'requested_field_ids': [201],
            'custom_fields': [{'field_type': 'text', 'question': 'Employer'}],
        })
        adhoc.remove_adhoc_field(self.application.id, -1)

        active = resubmission.get_active_resubmission_requests(self.application.id)
        self.assertEqual(active[0]['field_ids'], [201])

        result = responses.submit_responses(self.application.id, {201: 'Me'})

        self.assertEqual(result['status'], VisaApplication.PROCESSING)
        self.assertEqual(len(result['fulfilled_requests']), 1)

    def test_request_for_deleted_catalog_fields_is_dropped(self):
        resubmission.request_resubmission(self.application.id, [
            {'requested_field_ids': [201]},
            {'target': 'traveler', 'traveler_id': self.traveler6.id, 'requested_field_ids': [202]},
        ])
        catalog.delete_field(202, product_id=self.product.id)

        self.assertEqual(len(resubmission.get_active_resubmission_requests(self.application.id)), 1)

        result = responses.submit_responses(self.application.id, {201: 'Me'})

        self.assertEqual(result['status'], VisaApplication.PROCESSING)
