import json

from django.contrib.auth import get_user_model
from django.test import Client, TestCase
from django.urls import reverse

from visas.models import VisaApplication

from .factories import catalog_field, make_application, make_customer, make_product, with_passport

User = get_user_model()


class AdminApiTests(TestCase):
    def setUp(self):
        self.staff = User.objects.create_user(
            username='agent', password='password', email='agent@example.com', is_staff=True)
        self.client = Client()
        self.client.force_login(self.staff)
        self.product = make_product(fields=[catalog_field(1, 'Name', display_order=0)])
        self.application = make_application(product=self.product, status=VisaApplication.SUBMITTED)

    def post_json(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def test_non_staff_is_redirected(self):
        user = User.objects.create_user(username='client', password='password')
        client = Client()
        client.force_login(user)

        response = client.get(reverse('api_product_fields', args=[self.product.id]))

        self.assertEqual(response.status_code, 302)

    def test_field_catalog_endpoints(self):
        url = reverse('api_product_fields', args=[self.product.id])

        response = self.post_json(url, {'field_type': 'text', 'question': 'City'})
        self.assertEqual(response.status_code, 201)
        field_id = response.json()['data']['id']
        self.assertEqual(field_id, 2)

        response = self.post_json(url, [
            {'field_type': 'text', 'question': 'A'},
            {'field_type': 'number', 'question': 'B'},
        ])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()['data']['created']), 2)

        response = self.post_json(
            reverse('api_product_field_update', args=[field_id]), {'question': 'Town'})
        self.assertEqual(response.json()['data']['question'], 'Town')

        response = self.post_json(reverse('api_product_field_delete', args=[field_id]), {})
        self.assertEqual(response.status_code, 200)

        response = self.client.get(url)
        self.assertEqual([f['id'] for f in response.json()['data']], [1, 3, 4])

    def test_invalid_definition_is_400(self):
        response = self.post_json(
            reverse('api_product_fields', args=[self.product.id]),
            {'field_type': 'dropdown', 'question': 'Pick'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['status'], 'error')

    def test_unknown_product_is_404(self):
        response = self.client.get(reverse('api_product_fields', args=[424242]))
        self.assertEqual(response.status_code, 404)

    def test_resubmission_flow(self):
        response = self.post_json(
            reverse('api_request_resubmission', args=[self.application.id]),
            {'requests': [{'requested_field_ids': [1], 'note': 'Fix your name'}]})
        self.assertEqual(response.status_code, 200)

        response = self.client.get(reverse('api_active_resubmission', args=[self.application.id]))
        self.assertEqual(response.json()['count'], 1)

        response = self.client.get(reverse('api_admin_application_fields', args=[self.application.id]))
        self.assertEqual(response.json()['data'][-1]['id'], 1)

    def test_adhoc_endpoints_accept_negative_ids(self):
        response = self.post_json(
            reverse('api_adhoc_fields', args=[self.application.id]),
            {'fields': [{'field_type': 'text', 'question': 'Employer'}]})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data'][0]['id'], -1)

        response = self.post_json(
            reverse('api_adhoc_field_delete', args=[self.application.id, '-1']), {})
        self.assertEqual(response.status_code, 200)

    def test_status_endpoint(self):
        url = reverse('api_application_status', args=[self.application.id])

        response = self.post_json(url, {'status': 'pending'})
        self.assertFalse(response.json()['changed'])

        response = self.post_json(url, {'status': 'approved'})
        self.assertTrue(response.json()['changed'])

        response = self.post_json(url, {'status': 'draft'})
        self.assertEqual(response.status_code, 409)

    def test_status_body_must_be_an_object(self):
        url = reverse('api_application_status', args=[self.application.id])

        response = self.post_json(url, [{'status': 'approved'}])

        self.assertEqual(response.status_code, 400)
        self.application.refresh_from_db()
        self.assertEqual(self.application.status, VisaApplication.SUBMITTED)

    def test_delete_non_draft_is_409(self):
        response = self.post_json(reverse('api_application_delete', args=[self.application.id]), {})
        self.assertEqual(response.status_code, 409)


class ClientApiTests(TestCase):
    def setUp(self):
        self.customer = make_customer(email='jane@example.com')
        with_passport(self.customer)
        self.user = User.objects.create_user(
            username='jane', password='password', email='jane@example.com')
        self.client = Client()
        self.client.force_login(self.user)
        self.product = make_product(fields=[
            catalog_field(1, 'Name', is_required=True, display_order=0)])
        self.application = make_application(customer=self.customer, product=self.product)

    def post_json(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def test_wizard(self):
        response = self.post_json(reverse('api_application_create'), {
            'visa_product_id': self.product.id, 'nationality': 'French',
            'visa_type': '90-single', 'number_of_travelers': 2})
        self.assertEqual(response.status_code, 201)
        app_id = response.json()['data']['id']

        response = self.post_json(reverse('api_application_travelers', args=[app_id]), {
            'first_name': 'John', 'last_name': 'Doe', 'passport_number': 'zz1'})
        self.assertEqual(response.status_code, 201)

        response = self.post_json(reverse('api_application_processing', args=[app_id]),
                                  {'processing_type': 'standard'})
        self.assertEqual(response.json()['data']['processing_type'], 'Standard')

        response = self.post_json(reverse('api_application_submit', args=[app_id]), {})
        self.assertEqual(response.json()['data']['status'], 'submitted')

    def test_fields_and_responses(self):
        response = self.client.get(reverse('api_application_fields', args=[self.application.id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([f['id'] for f in response.json()['data']], [1])

        url = reverse('api_application_responses', args=[self.application.id])
        response = self.post_json(url, {'responses': [{'field_id': 1, 'value': 'Jane'}]})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['count'], 1)

        response = self.client.get(url)
        self.assertEqual(response.json()['data'][0]['value'], 'Jane')

    def test_missing_required_field_is_400(self):
        url = reverse('api_application_responses', args=[self.application.id])
        response = self.post_json(url, {'responses': {'_passport_number': 'X1'}})

        self.assertEqual(response.status_code, 400)

    def test_list_bodies_are_400(self):
        response = self.post_json(
            reverse('api_application_responses', args=[self.application.id]),
            [{'field_id': 1, 'value': 'Jane'}])
        self.assertEqual(response.status_code, 400)

        response = self.post_json(
            reverse('api_application_passport', args=[self.application.id]), ['AB777'])
        self.assertEqual(response.status_code, 400)

        self.application.refresh_from_db()
        self.assertEqual(self.application.field_responses, {})

    def test_other_customers_applications_are_hidden(self):
        other = make_application(customer=make_customer(email='bob@example.com'), product=self.product)

        response = self.client.get(reverse('api_application_fields', args=[other.id]))

        self.assertEqual(response.status_code, 404)

    def test_passport_endpoint(self):
        response = self.post_json(reverse('api_application_passport', args=[self.application.id]),
                                  {'passport_number': ' ab777 ', 'has_schengen_visa': True})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['passport_number'], 'AB777')
        self.application.refresh_from_db()
        self.assertEqual(self.application.field_responses['_passport_number']['value'], 'AB777')
        self.assertEqual(self.application.field_responses['_has_schengen_visa']['value'], 'Yes')

    def test_invalid_json_is_400(self):
        response = self.client.post(
            reverse('api_application_responses', args=[self.application.id]),
            data='{not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
