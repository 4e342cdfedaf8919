import datetime

from django.contrib import admin
from django.test import RequestFactory, TestCase

from customers.admin import CustomerAdmin
from customers.models import Customer, Traveler
from customers.services import (
    add_traveler,
    apply_passport_answers,
    missing_passport_keys,
    passport_value,
    update_passport,
)
from visas.admin import TravelerInline, VisaApplicationAdmin
from visas.exceptions import InvalidInput, NotFound, StateConflict
from visas.models import VisaApplication
from visas.tests.factories import make_application, make_traveler, with_passport


class PassportSyncTests(TestCase):
    def setUp(self):
        self.application = make_application(number_of_travelers=2)
        self.customer = self.application.customer

    def test_missing_keys(self):
        self.assertEqual(missing_passport_keys(self.customer), [
            '_passport_number', '_passport_expiry_date', '_residence_country', '_has_schengen_visa'])

        with_passport(self.customer)
        self.assertEqual(missing_passport_keys(self.customer), [])

    def test_no_is_an_answer(self):
        with_passport(self.customer, has_schengen_visa=False)

        self.assertEqual(passport_value(self.customer, '_has_schengen_visa'), 'No')
        self.assertNotIn('_has_schengen_visa', missing_passport_keys(self.customer))

    def test_apply_answers(self):
        updated = apply_passport_answers(self.customer, {
            '_passport_expiry_date': {'value': '2030-01-31'},
            '_has_schengen_visa': {'value': 'No'},
            '101': {'value': 'ignored'},
        })

        self.assertEqual(sorted(updated), ['has_schengen_visa', 'passport_expiry_date'])
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.passport_expiry_date, datetime.date(2030, 1, 31))
        self.assertFalse(self.customer.has_schengen_visa)

        with self.assertRaises(InvalidInput):
            apply_passport_answers(self.customer, {'_passport_expiry_date': {'value': 'soon'}})

    def test_update_passport_mirrors_answers(self):
        result = update_passport(self.application.id, None, {
            'passport_number': 'cd 4455', 'residence_country': 'Spain',
            'passport_nationality': 'Spanish'})

        self.assertEqual(result['passport_number'], 'CD 4455')
        self.assertIn('_passport_expiry_date', result['missing'])

        self.application.refresh_from_db()
        self.assertEqual(self.application.nationality, 'Spanish')
        self.assertEqual(self.application.field_responses['_residence_country']['value'], 'Spain')
        self.assertNotIn('_passport_expiry_date', self.application.field_responses)

    def test_update_traveler_passport(self):
        traveler = make_traveler(self.application)

        update_passport(self.application.id, traveler.id, {'passport_expiry_date': '2029-09-09'})

        traveler.refresh_from_db()
        self.assertEqual(traveler.passport_expiry_date, datetime.date(2029, 9, 9))
        self.assertEqual(traveler.field_responses['_passport_expiry_date']['value'], '2029-09-09')
        self.application.refresh_from_db()
        self.assertEqual(self.application.field_responses, {})

    def test_update_passport_errors(self):
        with self.assertRaises(InvalidInput):
            update_passport(self.application.id, None, {})
        with self.assertRaises(NotFound):
            update_passport(424242, None, {'passport_number': 'X'})
        with self.assertRaises(NotFound):
            update_passport(self.application.id, 424242, {'passport_number': 'X'})


class AddTravelerTests(TestCase):
    def test_travelers_two_to_n(self):
        application = make_application(number_of_travelers=2)

        traveler = add_traveler(application.id, {
            'first_name': 'John', 'last_name': 'Doe', 'passport_number': 'ef123'})

        self.assertEqual(traveler.passport_number, 'EF123')
        self.assertIsNone(traveler.has_schengen_visa)
        with self.assertRaises(InvalidInput):
            add_traveler(application.id, {'first_name': 'Too', 'last_name': 'Many'})

    def test_draft_only(self):
        application = make_application(number_of_travelers=3, status=VisaApplication.SUBMITTED)

        with self.assertRaises(StateConflict):
            add_traveler(application.id, {'first_name': 'John', 'last_name': 'Doe'})

    def test_names_are_required(self):
        application = make_application(number_of_travelers=2)

        with self.assertRaises(InvalidInput):
            add_traveler(application.id, {'first_name': 'John'})


class PassportAdminTests(TestCase):
    passport_attributes = ('passport_number', 'passport_expiry_date',
                           'residence_country', 'has_schengen_visa')

    def setUp(self):
        self.request = RequestFactory().get('/admin/')

    def test_customer_passport_is_read_only(self):
        model_admin = CustomerAdmin(Customer, admin.site)

        readonly = model_admin.get_readonly_fields(self.request)
        for attribute in self.passport_attributes:
            self.assertIn(attribute, readonly)

    def test_traveler_passport_is_read_only(self):
        inline = TravelerInline(VisaApplication, admin.site)

        readonly = inline.get_readonly_fields(self.request)
        for attribute in self.passport_attributes:
            self.assertIn(attribute, readonly)
        self.assertIs(inline.model, Traveler)
        self.assertIn(TravelerInline, VisaApplicationAdmin.inlines)
