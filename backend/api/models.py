# backend/api/models.py
from datetime import date
from decimal import Decimal

from django.contrib.auth.models import User
from django.contrib.contenttypes.fields import GenericForeignKey
from django.contrib.contenttypes.models import ContentType
from django.db import models
from django.utils import timezone

from .exceptions import Conflict


class Activity(models.Model):
    ACTION_TYPES = (
        ('created', 'Created'),
        ('updated', 'Updated'),
        ('deleted', 'Deleted'),
        ('started', 'Started'),
        ('completed', 'Completed'),
    )

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='activities')
    action_type = models.CharField(max_length=10, choices=ACTION_TYPES)
    description = models.CharField(max_length=255)
    timestamp = models.DateTimeField(auto_now_add=True)

    # Generic relationship to the object that was acted upon
    content_type = models.ForeignKey(ContentType, on_delete=models.CASCADE)
    object_id = models.PositiveIntegerField()
    content_object = GenericForeignKey('content_type', 'object_id')

    # Snapshot of deleted objects
    object_repr = models.TextField(blank=True, null=True)

    class Meta:
        ordering = ['-timestamp']
        verbose_name_plural = 'Activities'

    def __str__(self):
        return f'{self.user.username} {self.action_type} - {self.description}'


class Account(models.Model):
    """A money account (cash box, bank account, ...) with a running balance."""

    CASH = 'cash'
    BANK = 'bank'
    POS = 'pos'
    CREDIT_CARD = 'credit_card'
    OTHER = 'other'

    ACCOUNT_TYPE_CHOICES = [
        (CASH, 'Cash Account'),
        (BANK, 'Bank Account'),
        (POS, 'POS Account'),
        (CREDIT_CARD, 'Credit Card'),
        (OTHER, 'Other Account'),
    ]

    LEDGER_ENTITY_TYPE = 'account'

    name = models.CharField(max_length=255, unique=True)
    account_type = models.CharField(max_length=20, choices=ACCOUNT_TYPE_CHOICES, default=CASH)
    account_number = models.CharField(max_length=50, blank=True, default='')
    bank_name = models.CharField(max_length=255, blank=True, default='')
    opening_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    current_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='accounts'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Counterparty(models.Model):
    """Fields shared by suppliers and customers."""

    name = models.CharField(max_length=255)
    company_name = models.CharField(max_length=255, blank=True, default='')
    phone = models.CharField(max_length=20, blank=True, default='')
    address = models.TextField(blank=True, default='')
    opening_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    current_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['name']

    def __str__(self):
        return self.name


class Supplier(Counterparty):
    LEDGER_ENTITY_TYPE = 'supplier'

    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='suppliers'
    )


class Customer(Counterparty):
    LEDGER_ENTITY_TYPE = 'customer'

    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='customers'
    )


class LedgerEntry(models.Model):
    """Append-only balance movement for an account, supplier or customer."""

    ACCOUNT = 'account'
    SUPPLIER = 'supplier'
    CUSTOMER = 'customer'

    ENTITY_TYPE_CHOICES = [
        (ACCOUNT, 'Account'),
        (SUPPLIER, 'Supplier'),
        (CUSTOMER, 'Customer'),
    ]

    CREDIT = 'credit'
    DEBIT = 'debit'

    TRANSACTION_TYPE_CHOICES = [
        (CREDIT, 'Credit'),
        (DEBIT, 'Debit'),
    ]

    entity_type = models.CharField(max_length=10, choices=ENTITY_TYPE_CHOICES)
    account = models.ForeignKey(
        Account, on_delete=models.CASCADE, null=True, blank=True, related_name='ledger_entries'
    )
    supplier = models.ForeignKey(
        Supplier, on_delete=models.CASCADE, null=True, blank=True, related_name='ledger_entries'
    )
    customer = models.ForeignKey(
        Customer, on_delete=models.CASCADE, null=True, blank=True, related_name='ledger_entries'
    )
    transaction_type = models.CharField(max_length=10, choices=TRANSACTION_TYPE_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.CharField(max_length=255)
    reference_number = models.CharField(max_length=50, blank=True, default='')
    payment = models.ForeignKey(
        'Payment', on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries'
    )
    purchase_invoice = models.ForeignKey(
        'PurchaseInvoice', on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries'
    )
    expense = models.ForeignKey(
        'Expense', on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries'
    )
    # Marks the informational opening-balance line written when an account is created.
    is_opening = models.BooleanField(default=False)
    transaction_date = models.DateTimeField(default=timezone.now)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries'
    )

    class Meta:
        ordering = ['transaction_date', 'id']
        verbose_name_plural = 'Ledger Entries'

    def __str__(self):
        return f"{self.get_transaction_type_display()} {self.amount} ({self.description})"

    @property
    def entity(self):
        return getattr(self, self.entity_type)

    @property
    def signed_amount(self) -> Decimal:
        if self.transaction_type == self.CREDIT:
            return self.amount
        return -self.amount


class Category(models.Model):
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='categories'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Categories'

    def __str__(self):
        return self.name


class Item(models.Model):
    RAW = 'raw'
    FINAL = 'final'

    ITEM_TYPE_CHOICES = [
        (RAW, 'Raw Material'),
        (FINAL, 'Final Product'),
    ]

    name = models.CharField(max_length=255)
    item_type = models.CharField(max_length=10, choices=ITEM_TYPE_CHOICES)
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name='items')
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    avg_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='items'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        unique_together = ('name', 'category')

    def __str__(self):
        return self.name

    @property
    def total_value(self) -> Decimal:
        return (self.quantity or Decimal('0')) * (self.avg_price or Decimal('0'))


class StockAdjustment(models.Model):
    """Signed stock movement for an item with the average price it produced."""

    item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name='stock_adjustments')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    avg_price = models.DecimalField(max_digits=12, decimal_places=2)
    reason = models.CharField(max_length=255)
    notes = models.TextField(blank=True, default='')
    purchase_invoice = models.ForeignKey(
        'PurchaseInvoice', on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_adjustments'
    )
    production = models.ForeignKey(
        'Production', on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_adjustments'
    )
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_adjustments'
    )
    adjustment_date = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-adjustment_date', '-id']

    def __str__(self):
        return f"{self.item.name}: {self.quantity:+} ({self.reason})"


class PurchaseInvoice(models.Model):
    UNPAID = 'unpaid'
    PARTIAL = 'partial'
    PAID = 'paid'

    PAYMENT_STATUS_CHOICES = [
        (UNPAID, 'Unpaid'),
        (PARTIAL, 'Partially Paid'),
        (PAID, 'Paid'),
    ]

    invoice_number = models.CharField(max_length=20, unique=True)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='purchase_invoices')
    invoice_date = models.DateField(default=date.today)
    due_date = models.DateField(null=True, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default=UNPAID)
    notes = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='purchase_invoices'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-invoice_date', '-id']

    def __str__(self):
        return self.invoice_number

    @property
    def outstanding_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount


class PurchaseInvoiceItem(models.Model):
    purchase_invoice = models.ForeignKey(PurchaseInvoice, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='purchase_lines')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.quantity} x {self.item.name}"


class Payment(models.Model):
    """Money paid to a supplier, either direct or against a purchase invoice."""

    payment_number = models.CharField(max_length=20, unique=True)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='payments')
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='payments')
    purchase_invoice = models.ForeignKey(
        PurchaseInvoice, on_delete=models.PROTECT, null=True, blank=True, related_name='payments'
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_date = models.DateField(default=date.today)
    notes = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-payment_date', '-id']

    def __str__(self):
        return f"{self.payment_number} - {self.amount}"

    @property
    def is_direct(self) -> bool:
        return self.purchase_invoice_id is None


class ExpenseCategory(models.Model):
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='expense_categories'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        verbose_name_plural = 'Expense Categories'

    def __str__(self):
        return self.name


class Expense(models.Model):
    category = models.ForeignKey(ExpenseCategory, on_delete=models.PROTECT, related_name='expenses')
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name='expenses')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.CharField(max_length=255)
    expense_date = models.DateField(default=date.today)
    notes = models.TextField(blank=True, default='')
    receipt_image = models.ImageField(upload_to='expense_receipts/', blank=True, null=True)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-expense_date', '-id']

    def __str__(self):
        return f"Expense of {self.amount} on {self.expense_date}"


class Recipe(models.Model):
    """Bill of materials for one final product."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    final_product = models.OneToOneField(Item, on_delete=models.PROTECT, related_name='recipe')
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='recipes'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class RecipeIngredient(models.Model):
    recipe = models.ForeignKey(Recipe, on_delete=models.CASCADE, related_name='ingredients')
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='recipe_usages')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        unique_together = ('recipe', 'item')

    def __str__(self):
        return f"{self.quantity} x {self.item.name}"


class Production(models.Model):
    """A manufacturing batch moving through draft, in process and done."""

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        IN_PROCESS = 'in_process', 'In Process'
        DONE = 'done', 'Done'

    # Each status may only advance to the next one.
    TRANSITIONS = {
        Status.DRAFT: Status.IN_PROCESS,
        Status.IN_PROCESS: Status.DONE,
    }

    batch_number = models.CharField(max_length=50, unique=True)
    recipe = models.ForeignKey(Recipe, on_delete=models.PROTECT, related_name='productions')
    quantity = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    notes = models.TextField(blank=True, default='')
    start_date = models.DateTimeField(null=True, blank=True)
    completion_date = models.DateTimeField(null=True, blank=True)
    total_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    cost_per_unit = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='productions'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Batch {self.batch_number}"

    def can_transition_to(self, target) -> bool:
        return self.TRANSITIONS.get(self.status) == target

    def transition_to(self, target) -> None:
        """Move to ``target`` or raise :class:`Conflict` for any other step."""

        if not self.can_transition_to(target):
            raise Conflict(
                f"Production batch '{self.batch_number}' cannot move from "
                f"{self.Status(self.status).label} to {self.Status(target).label}."
            )
        self.status = target


class ProductionIngredient(models.Model):
    production = models.ForeignKey(Production, on_delete=models.CASCADE, related_name='ingredients')
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='production_usages')
    quantity = models.DecimalField(max_digits=12, decimal_places=2)
    is_from_recipe = models.BooleanField(default=True)

    class Meta:
        unique_together = ('production', 'item')

    def __str__(self):
        return f"{self.quantity} x {self.item.name}"


class ProductionItem(models.Model):
    """One serialized unit produced by a completed batch."""

    production = models.ForeignKey(Production, on_delete=models.CASCADE, related_name='items')
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name='produced_units')
    serial_number = models.CharField(max_length=100, unique=True)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2)
    is_sold = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['serial_number']

    def __str__(self):
        return self.serial_number
