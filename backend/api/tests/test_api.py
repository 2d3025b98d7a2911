"""End-to-end tests for the REST API."""

from decimal import Decimal
from io import BytesIO

from django.test import TestCase
from openpyxl import load_workbook
from rest_framework.test import APIClient

from ..models import Account, Activity, Category, ExpenseCategory, Item, Payment
from . import create_user, make_account, make_item, make_supplier


class APITestCase(TestCase):
    def setUp(self):
        self.user = create_user("apiuser")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)


class AuthenticationTest(TestCase):
    def test_anonymous_requests_are_rejected(self):
        response = APIClient().get('/api/accounts/')
        self.assertEqual(response.status_code, 401)


class AccountAPITest(APITestCase):
    def test_create_account_with_opening_balance(self):
        response = self.client.post(
            '/api/accounts/',
            {'name': 'Main Cash', 'account_type': 'cash', 'opening_balance': '100.00'},
            format='json',
        )
        self.assertEqual(response.status_code, 201, response.content)
        self.assertEqual(response.data['current_balance'], '100.00')

        account = Account.objects.get(pk=response.data['id'])
        self.assertEqual(account.created_by, self.user)
        self.assertTrue(Activity.objects.filter(action_type='created', object_id=account.pk).exists())

    def test_duplicate_and_invalid_accounts(self):
        make_account('Main Cash')
        response = self.client.post('/api/accounts/', {'name': 'MAIN CASH'}, format='json')
        self.assertEqual(response.status_code, 409, response.content)
        self.assertEqual(response.data['code'], 'conflict')

        response = self.client.post('/api/accounts/', {'name': 'Bank', 'account_type': 'bank'}, format='json')
        self.assertEqual(response.status_code, 400, response.content)
        self.assertEqual(response.data['code'], 'validation_error')

    def test_opening_balance_is_read_only_after_creation(self):
        account = make_account('Till', '50.00')
        response = self.client.patch(f'/api/accounts/{account.id}/', {'opening_balance': '75.00'}, format='json')
        self.assertEqual(response.status_code, 400, response.content)

        response = self.client.patch(f'/api/accounts/{account.id}/', {'name': 'Front Till'}, format='json')
        self.assertEqual(response.status_code, 200, response.content)
        self.assertEqual(response.data['name'], 'Front Till')

    def test_balance_ledger_and_export(self):
        account = make_account('Till', '50.00')

        response = self.client.get(f'/api/accounts/{account.id}/balance/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['current_balance'], Decimal('50.00'))

        response = self.client.get(f'/api/accounts/{account.id}/ledger/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data[0]['description'], 'Opening Balance')

        response = self.client.get(f'/api/accounts/{account.id}/ledger/', {'export_format': 'xlsx'})
        self.assertEqual(response.status_code, 200)
        self.assertIn('attachment;', response['Content-Disposition'])
        worksheet = load_workbook(BytesIO(response.content)).active
        self.assertEqual(worksheet['A1'].value, 'Ledger - Till')

    def test_delete_rules(self):
        idle = make_account('Idle', '10.00')
        busy = make_account('Busy', '100.00')
        category = ExpenseCategory.objects.create(name='Office')
        self.client.post(
            '/api/expenses/',
            {'category': category.id, 'account': busy.id, 'amount': '5.00', 'description': 'Pens'},
            format='json',
        )

        self.assertEqual(self.client.delete(f'/api/accounts/{idle.id}/').status_code, 204)
        response = self.client.delete(f'/api/accounts/{busy.id}/')
        self.assertEqual(response.status_code, 409, response.content)
        self.assertTrue(Account.objects.filter(pk=busy.pk).exists())

    def test_recalculate_endpoint(self):
        account = make_account('Till', '20.00')
        Account.objects.filter(pk=account.pk).update(current_balance=Decimal('0.00'))
        response = self.client.post(f'/api/accounts/{account.id}/recalculate/')
        self.assertEqual(response.status_code, 200, response.content)
        self.assertEqual(response.data['current_balance'], '20.00')


class ItemAPITest(APITestCase):
    def setUp(self):
        super().setUp()
        self.category = Category.objects.create(name='Metals')

    def test_item_crud_rules(self):
        response = self.client.post(
            '/api/items/',
            {'name': 'Steel', 'item_type': 'raw', 'category': self.category.id},
            format='json',
        )
        self.assertEqual(response.status_code, 201, response.content)
        item_id = response.data['id']

        response = self.client.post(
            '/api/items/',
            {'name': 'steel', 'item_type': 'raw', 'category': self.category.id},
            format='json',
        )
        self.assertEqual(response.status_code, 409, response.content)

        response = self.client.patch(f'/api/items/{item_id}/', {'item_type': 'final'}, format='json')
        self.assertEqual(response.status_code, 400, response.content)

        response = self.client.patch(f'/api/items/{item_id}/', {'quantity': '99'}, format='json')
        self.assertEqual(response.status_code, 200, response.content)
        self.assertEqual(response.data['quantity'], '0.00')

    def test_adjust_history_and_delete(self):
        item = make_item('Copper', category=self.category)

        response = self.client.post(
            f'/api/items/{item.id}/adjust/',
            {'quantity': '5', 'unit_price': '10.00', 'reason': 'Stock count'},
            format='json',
        )
        self.assertEqual(response.status_code, 201, response.content)
        self.assertEqual(response.data['stock']['quantity'], Decimal('5.00'))

        response = self.client.post(
            f'/api/items/{item.id}/adjust/',
            {'quantity': '-6', 'reason': 'Scrap'},
            format='json',
        )
        self.assertEqual(response.status_code, 400, response.content)
        self.assertEqual(response.data['code'], 'insufficient_stock')
        self.assertEqual(response.data['available'], '5.00')

        response = self.client.get(f'/api/items/{item.id}/history/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['reason'], 'Stock count')

        self.client.post(f'/api/items/{item.id}/adjust/', {'quantity': '-5', 'reason': 'Scrap'}, format='json')
        response = self.client.delete(f'/api/items/{item.id}/')
        self.assertEqual(response.status_code, 409, response.content)

    def test_category_with_items_cannot_be_deleted(self):
        make_item('Tin', category=self.category)
        response = self.client.delete(f'/api/categories/{self.category.id}/')
        self.assertEqual(response.status_code, 409, response.content)

    def test_unknown_item_returns_404(self):
        response = self.client.get('/api/items/999999/stock/')
        self.assertEqual(response.status_code, 404)


class PurchaseAPITest(APITestCase):
    def setUp(self):
        super().setUp()
        self.account = make_account('Bank', '10000.00', account_type=Account.BANK, bank_name='First Bank')
        self.supplier = make_supplier('Metal Works')
        self.steel = make_item('Steel')

    def post_invoice(self, **overrides):
        payload = {
            'supplier_id': self.supplier.id,
            'items': [{'item_id': self.steel.id, 'quantity': '10', 'unit_price': '100.00'}],
            'payment_status': 'partial',
            'paid_amount': '400.00',
            'account_id': self.account.id,
        }
        payload.update(overrides)
        return self.client.post('/api/purchase-invoices/', payload, format='json')

    def test_create_invoice_and_summary(self):
        response = self.post_invoice()
        self.assertEqual(response.status_code, 201, response.content)
        self.assertEqual(response.data['total_amount'], '1000.00')
        self.assertEqual(response.data['outstanding_amount'], '600.00')
        self.assertEqual(len(response.data['payments']), 1)
        self.assertFalse(response.data['payments'][0]['is_direct'])

        response = self.client.get('/api/purchase-invoices/summary/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['partial_count'], 1)

    def test_invoice_errors(self):
        response = self.post_invoice(supplier_id=999999)
        self.assertEqual(response.status_code, 404, response.content)

        response = self.post_invoice(paid_amount='10000.01', payment_status='partial', items=[
            {'item_id': self.steel.id, 'quantity': '200', 'unit_price': '100.00'},
        ])
        self.assertEqual(response.status_code, 400, response.content)
        self.assertEqual(response.data['code'], 'insufficient_funds')

        response = self.post_invoice(items='not a list')
        self.assertEqual(response.status_code, 400, response.content)

    def test_update_and_delete_unpaid_invoice(self):
        response = self.post_invoice(payment_status='unpaid', paid_amount=None, account_id=None)
        self.assertEqual(response.status_code, 201, response.content)
        invoice_id = response.data['id']

        response = self.client.patch(
            f'/api/purchase-invoices/{invoice_id}/',
            {'items': [{'item_id': self.steel.id, 'quantity': '4', 'unit_price': '100.00'}]},
            format='json',
        )
        self.assertEqual(response.status_code, 200, response.content)
        self.assertEqual(response.data['total_amount'], '400.00')

        response = self.client.delete(f'/api/purchase-invoices/{invoice_id}/')
        self.assertEqual(response.status_code, 204, response.content)
        self.steel.refresh_from_db()
        self.supplier.refresh_from_db()
        self.assertEqual(self.steel.quantity, Decimal('0.00'))
        self.assertEqual(self.supplier.current_balance, Decimal('0.00'))

    def test_paid_invoice_cannot_be_deleted(self):
        invoice_id = self.post_invoice().data['id']
        response = self.client.delete(f'/api/purchase-invoices/{invoice_id}/')
        self.assertEqual(response.status_code, 409, response.content)

    def test_direct_payments_and_filters(self):
        self.post_invoice(payment_status='unpaid', paid_amount=None, account_id=None)
        response = self.client.post(
            '/api/payments/',
            {'supplier_id': self.supplier.id, 'account_id': self.account.id, 'amount': '250.00'},
            format='json',
        )
        self.assertEqual(response.status_code, 201, response.content)
        payment_id = response.data['id']
        self.assertTrue(response.data['is_direct'])

        response = self.client.post(
            '/api/payments/',
            {'supplier_id': self.supplier.id, 'account_id': self.account.id, 'amount': '5000.00'},
            format='json',
        )
        self.assertEqual(response.status_code, 400, response.content)

        self.post_invoice()
        response = self.client.get('/api/payments/', {'direct_only': 'true'})
        self.assertEqual(response.data['count'], 1)
        response = self.client.get(f'/api/suppliers/{self.supplier.id}/payments/')
        self.assertEqual(response.data['count'], 2)

        response = self.client.delete(f'/api/payments/{payment_id}/')
        self.assertEqual(response.status_code, 204, response.content)
        invoice_payment = Payment.objects.get()
        response = self.client.delete(f'/api/payments/{invoice_payment.id}/')
        self.assertEqual(response.status_code, 409, response.content)

    def test_supplier_statement_exports(self):
        self.post_invoice()

        response = self.client.get(f'/api/suppliers/{self.supplier.id}/statement/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['summary']['invoice_count'], 1)

        response = self.client.get(f'/api/suppliers/{self.supplier.id}/statement/', {'export_format': 'xlsx'})
        self.assertEqual(response.status_code, 200)
        worksheet = load_workbook(BytesIO(response.content)).active
        self.assertEqual(worksheet['A1'].value, 'Supplier Statement - Metal Works')

        response = self.client.get(f'/api/suppliers/{self.supplier.id}/statement/', {'export_format': 'pdf'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/pdf')
        self.assertTrue(response.content.startswith(b'%PDF'))

        response = self.client.get(f'/api/suppliers/{self.supplier.id}/ledger/')
        self.assertEqual(len(response.data), 2)


class ExpenseAPITest(APITestCase):
    def setUp(self):
        super().setUp()
        self.account = make_account('Cash', '300.00')
        self.category = ExpenseCategory.objects.create(name='Travel')

    def test_expense_lifecycle(self):
        response = self.client.post(
            '/api/expenses/',
            {'category': self.category.id, 'account': self.account.id, 'amount': '100.00', 'description': 'Taxi'},
            format='json',
        )
        self.assertEqual(response.status_code, 201, response.content)
        expense_id = response.data['id']

        response = self.client.patch(f'/api/expenses/{expense_id}/', {'amount': '1.00'}, format='json')
        self.assertEqual(response.status_code, 400, response.content)
        response = self.client.patch(f'/api/expenses/{expense_id}/', {'notes': 'Airport'}, format='json')
        self.assertEqual(response.status_code, 200, response.content)

        response = self.client.delete(f'/api/expenses/{expense_id}/')
        self.assertEqual(response.status_code, 204, response.content)
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal('300.00'))

        response = self.client.delete(f'/api/expense-categories/{self.category.id}/')
        self.assertEqual(response.status_code, 204, response.content)

    def test_overspending_and_bulk(self):
        response = self.client.post(
            '/api/expenses/',
            {'category': self.category.id, 'account': self.account.id, 'amount': '300.01', 'description': 'Flight'},
            format='json',
        )
        self.assertEqual(response.status_code, 400, response.content)
        self.assertEqual(response.data['code'], 'insufficient_funds')

        response = self.client.post(
            '/api/expenses/bulk/',
            {
                'date': '2024-05-01',
                'expenses': [
                    {'category_id': self.category.id, 'account_id': self.account.id, 'amount': '10.00', 'description': 'Bus'},
                    {'category_id': self.category.id, 'account_id': self.account.id, 'amount': '20.00', 'description': 'Train'},
                ],
            },
            format='json',
        )
        self.assertEqual(response.status_code, 201, response.content)
        self.assertEqual(len(response.data), 2)
        self.account.refresh_from_db()
        self.assertEqual(self.account.current_balance, Decimal('270.00'))


class ProductionAPITest(APITestCase):
    def setUp(self):
        super().setUp()
        self.cloth = make_item('Cloth', quantity='5', unit_price='20.00')
        self.shirt = make_item('Shirt', Item.FINAL)

    def create_recipe(self):
        response = self.client.post(
            '/api/recipes/',
            {
                'name': 'Shirt',
                'final_product_id': self.shirt.id,
                'ingredients': [{'item_id': self.cloth.id, 'quantity': '2'}],
            },
            format='json',
        )
        self.assertEqual(response.status_code, 201, response.content)
        return response.data['id']

    def test_recipe_ingredient_endpoints(self):
        recipe_id = self.create_recipe()
        buttons = make_item('Buttons', quantity='50', unit_price='0.10')

        response = self.client.post(
            f'/api/recipes/{recipe_id}/ingredients/', {'item_id': buttons.id, 'quantity': '6'}, format='json'
        )
        self.assertEqual(response.status_code, 201, response.content)
        response = self.client.put(
            f'/api/recipes/{recipe_id}/ingredients/{buttons.id}/', {'quantity': '8'}, format='json'
        )
        self.assertEqual(response.status_code, 200, response.content)
        self.assertEqual(response.data['quantity'], '8.00')

        response = self.client.get(f'/api/recipes/{recipe_id}/cost/')
        self.assertEqual(response.data['cost_per_unit'], Decimal('40.80'))

        response = self.client.delete(f'/api/recipes/{recipe_id}/ingredients/{buttons.id}/')
        self.assertEqual(response.status_code, 204)
        response = self.client.get(f'/api/recipes/{recipe_id}/ingredients/')
        self.assertEqual(len(response.data), 1)

    def test_production_workflow(self):
        recipe_id = self.create_recipe()
        response = self.client.post(
            '/api/productions/', {'recipe_id': recipe_id, 'batch_number': 'SH-1', 'quantity': 3}, format='json'
        )
        self.assertEqual(response.status_code, 201, response.content)
        production_id = response.data['id']
        self.assertEqual(response.data['status'], 'draft')

        response = self.client.get(f'/api/productions/{production_id}/feasibility/')
        self.assertFalse(response.data['can_produce'])

        response = self.client.post(f'/api/productions/{production_id}/start/')
        self.assertEqual(response.status_code, 400, response.content)
        self.assertEqual(response.data['code'], 'insufficient_stock')
        self.assertFalse(response.data['feasibility']['can_produce'])

        self.client.post(
            f'/api/items/{self.cloth.id}/adjust/',
            {'quantity': '2', 'unit_price': '20.00', 'reason': 'Found rolls'},
            format='json',
        )
        response = self.client.post(f'/api/productions/{production_id}/start/')
        self.assertEqual(response.status_code, 200, response.content)
        self.assertEqual(response.data['status'], 'in_process')

        response = self.client.post(
            f'/api/productions/{production_id}/complete/', {'serial_numbers': ['A', 'B']}, format='json'
        )
        self.assertEqual(response.status_code, 400, response.content)

        response = self.client.post(
            f'/api/productions/{production_id}/complete/', {'serial_numbers': ['A', 'B', 'C']}, format='json'
        )
        self.assertEqual(response.status_code, 200, response.content)
        self.assertEqual(response.data['status'], 'done')
        self.assertEqual(response.data['cost_per_unit'], '40.00')
        self.assertEqual(len(response.data['items']), 3)

        response = self.client.delete(f'/api/productions/{production_id}/')
        self.assertEqual(response.status_code, 409, response.content)
        response = self.client.delete(f'/api/recipes/{recipe_id}/')
        self.assertEqual(response.status_code, 409, response.content)

        actions = set(Activity.objects.filter(object_id=production_id).values_list('action_type', flat=True))
        self.assertTrue({'created', 'started', 'completed'} <= actions)

        response = self.client.get('/api/productions/', {'status': 'done'})
        self.assertEqual(response.data['count'], 1)
