# backend/api/serializers.py
from rest_framework import serializers

from .exceptions import Conflict, ValidationFailed
from .models import (
    Account,
    Activity,
    Category,
    Customer,
    Expense,
    ExpenseCategory,
    Item,
    LedgerEntry,
    Payment,
    Production,
    ProductionIngredient,
    ProductionItem,
    PurchaseInvoice,
    PurchaseInvoiceItem,
    Recipe,
    RecipeIngredient,
    StockAdjustment,
    Supplier,
)
from .services import expenses as expense_service
from .services import ledger as ledger_service
from .services import purchasing as purchasing_service
from .services import recipes as recipe_service


def _request_user(serializer):
    request = serializer.context.get('request')
    return getattr(request, 'user', None)


def _check_unique_name(model, name, instance=None, **scope):
    """Raise :class:`Conflict` when ``name`` is taken (case-insensitive)."""

    queryset = model.objects.filter(name__iexact=name.strip(), **scope)
    if instance is not None:
        queryset = queryset.exclude(pk=instance.pk)
    if queryset.exists():
        raise Conflict(f"{model._meta.verbose_name.capitalize()} with name '{name.strip()}' already exists.")
    return name.strip()


class ActivitySerializer(serializers.ModelSerializer):
    user = serializers.StringRelatedField()

    class Meta:
        model = Activity
        fields = ['id', 'user', 'action_type', 'description', 'timestamp', 'object_id']


class LedgerEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = LedgerEntry
        fields = [
            'id',
            'entity_type',
            'transaction_type',
            'amount',
            'balance',
            'description',
            'reference_number',
            'payment',
            'purchase_invoice',
            'expense',
            'transaction_date',
        ]


class AccountSerializer(serializers.ModelSerializer):
    account_type_label = serializers.CharField(source='get_account_type_display', read_only=True)

    class Meta:
        model = Account
        fields = [
            'id',
            'name',
            'account_type',
            'account_type_label',
            'account_number',
            'bank_name',
            'opening_balance',
            'current_balance',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['current_balance', 'created_at', 'updated_at']
        # Name clashes are reported as conflicts by the ledger service.
        extra_kwargs = {'name': {'validators': []}}

    def validate_opening_balance(self, value):
        if self.instance is not None and value != self.instance.opening_balance:
            raise serializers.ValidationError('Opening balance cannot be changed after creation.')
        return value

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if self.instance is not None:
            account_type = attrs.get('account_type', self.instance.account_type)
            bank_name = attrs.get('bank_name', self.instance.bank_name)
            if account_type == Account.BANK and not (bank_name or '').strip():
                raise ValidationFailed('Bank name is required for bank accounts.')
            if 'name' in attrs:
                attrs['name'] = _check_unique_name(Account, attrs['name'], self.instance)
        return attrs

    def create(self, validated_data):
        user = validated_data.pop('created_by', None) or _request_user(self)
        return ledger_service.create_account(user=user, **validated_data)


class CounterpartySerializer(serializers.ModelSerializer):
    class Meta:
        fields = [
            'id',
            'name',
            'company_name',
            'phone',
            'address',
            'opening_balance',
            'current_balance',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['current_balance', 'created_at', 'updated_at']

    def validate_opening_balance(self, value):
        if self.instance is not None and value != self.instance.opening_balance:
            raise serializers.ValidationError('Opening balance cannot be changed after creation.')
        return value

    def create(self, validated_data):
        validated_data['current_balance'] = validated_data.get('opening_balance') or 0
        return super().create(validated_data)


class SupplierSerializer(CounterpartySerializer):
    class Meta(CounterpartySerializer.Meta):
        model = Supplier


class CustomerSerializer(CounterpartySerializer):
    class Meta(CounterpartySerializer.Meta):
        model = Customer


class CategorySerializer(serializers.ModelSerializer):
    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'item_count', 'created_at']
        read_only_fields = ['created_at']
        extra_kwargs = {'name': {'validators': []}}

    def validate_name(self, value):
        return _check_unique_name(Category, value, self.instance)


class ExpenseCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ExpenseCategory
        fields = ['id', 'name', 'description', 'created_at']
        read_only_fields = ['created_at']
        extra_kwargs = {'name': {'validators': []}}

    def validate_name(self, value):
        return _check_unique_name(ExpenseCategory, value, self.instance)


class ItemSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    total_value = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Item
        fields = [
            'id',
            'name',
            'item_type',
            'category',
            'category_name',
            'quantity',
            'avg_price',
            'total_value',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['quantity', 'avg_price', 'created_at', 'updated_at']
        validators = []

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if self.instance is not None and attrs.get('item_type', self.instance.item_type) != self.instance.item_type:
            raise ValidationFailed('Item type cannot be changed after creation.')

        category = attrs.get('category', getattr(self.instance, 'category', None))
        name = attrs.get('name', getattr(self.instance, 'name', ''))
        if 'name' in attrs or 'category' in attrs:
            attrs['name'] = _check_unique_name(Item, name, self.instance, category=category)
        return attrs


class StockAdjustmentSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)
    created_by_name = serializers.CharField(source='created_by.username', read_only=True, allow_null=True)
    purchase_invoice_number = serializers.CharField(
        source='purchase_invoice.invoice_number', read_only=True, allow_null=True
    )
    production_batch = serializers.CharField(source='production.batch_number', read_only=True, allow_null=True)

    class Meta:
        model = StockAdjustment
        fields = [
            'id',
            'item',
            'item_name',
            'quantity',
            'avg_price',
            'reason',
            'notes',
            'purchase_invoice',
            'purchase_invoice_number',
            'production',
            'production_batch',
            'created_by_name',
            'adjustment_date',
        ]


class StockAdjustRequestSerializer(serializers.Serializer):
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    reason = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PurchaseInvoiceItemSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source='item.name', read_only=True)

    class Meta:
        model = PurchaseInvoiceItem
        fields = ['id', 'item', 'item_name', 'quantity', 'unit_price', 'total_price']


class PurchaseLineWriteSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)


class PaymentSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    account_name = serializers.CharField(source='account.name', read_only=True)
    invoice_number = serializers.CharField(
        source='purchase_invoice.invoice_number', read_only=True, allow_null=True
    )

    class Meta:
        model = Payment
        fields = [
            'id',
            'payment_number',
            'supplier',
            'supplier_name',
            'account',
            'account_name',
            'purchase_invoice',
            'invoice_number',
            'amount',
            'payment_date',
            'notes',
            'is_direct',
            'created_at',
        ]


class PaymentWriteSerializer(serializers.Serializer):
    supplier_id = serializers.IntegerField()
    account_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def create(self, validated_data):
        return purchasing_service.create_payment(user=_request_user(self), **validated_data)


class PurchaseInvoiceReadSerializer(serializers.ModelSerializer):
    items = PurchaseInvoiceItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    supplier_name = serializers.CharField(source='supplier.name', read_only=True)
    outstanding_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = PurchaseInvoice
        fields = [
            'id',
            'invoice_number',
            'supplier',
            'supplier_name',
            'invoice_date',
            'due_date',
            'subtotal',
            'tax_amount',
            'discount_amount',
            'total_amount',
            'paid_amount',
            'outstanding_amount',
            'payment_status',
            'notes',
            'items',
            'payments',
            'created_at',
            'updated_at',
        ]


class PurchaseInvoiceWriteSerializer(serializers.Serializer):
    supplier_id = serializers.IntegerField()
    account_id = serializers.IntegerField(required=False, allow_null=True)
    invoice_date = serializers.DateField(required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)
    items = PurchaseLineWriteSerializer(many=True)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=0)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=0)
    payment_status = serializers.ChoiceField(
        choices=PurchaseInvoice.PAYMENT_STATUS_CHOICES, default=PurchaseInvoice.UNPAID
    )
    paid_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def create(self, validated_data):
        return purchasing_service.create_purchase_invoice(user=_request_user(self), **validated_data)


class PurchaseInvoiceUpdateSerializer(serializers.Serializer):
    invoice_date = serializers.DateField(required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    items = PurchaseLineWriteSerializer(many=True, required=False)
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def update(self, instance, validated_data):
        return purchasing_service.update_purchase_invoice(instance, user=_request_user(self), **validated_data)


class ExpenseSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    account_name = serializers.CharField(source='account.name', read_only=True)

    class Meta:
        model = Expense
        fields = [
            'id',
            'category',
            'category_name',
            'account',
            'account_name',
            'amount',
            'description',
            'expense_date',
            'notes',
            'receipt_image',
            'created_at',
        ]
        read_only_fields = ['created_at']
        extra_kwargs = {
            'expense_date': {'required': False},
            'receipt_image': {'required': False},
        }

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if self.instance is not None:
            if 'amount' in attrs and attrs['amount'] != self.instance.amount:
                raise ValidationFailed('Expense amount cannot be changed; delete the expense and record it again.')
            if 'account' in attrs and attrs['account'] != self.instance.account:
                raise ValidationFailed('Expense account cannot be changed; delete the expense and record it again.')
            attrs.pop('amount', None)
            attrs.pop('account', None)
        return attrs

    def create(self, validated_data):
        return expense_service.create_expense(
            category_id=validated_data['category'].pk,
            account_id=validated_data['account'].pk,
            amount=validated_data['amount'],
            description=validated_data['description'],
            expense_date=validated_data.get('expense_date'),
            notes=validated_data.get('notes', ''),
            receipt_image=validated_data.get('receipt_image'),
            user=_request_user(self),
        )

    def update(self, instance, validated_data):
        return expense_service.update_expense(instance, **validated_data)


class BulkExpenseLineSerializer(serializers.Serializer):
    category_id = serializers.IntegerField()
    account_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    description = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class BulkExpenseSerializer(serializers.Serializer):
    date = serializers.DateField()
    expenses = BulkExpenseLineSerializer(many=True, allow_empty=False)

    def create(self, validated_data):
        return expense_service.create_expenses_bulk(
            validated_data['date'],
            validated_data['expenses'],
            user=_request_user(self),
        )


class IngredientInputSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=2)


class RecipeIngredientSerializer(serializers.ModelSerializer):
    item_id = serializers.IntegerField(read_only=True)
    item_name = serializers.CharField(source='item.name', read_only=True)

    class Meta:
        model = RecipeIngredient
        fields = ['id', 'item_id', 'item_name', 'quantity']


class RecipeSerializer(serializers.ModelSerializer):
    ingredients = RecipeIngredientSerializer(many=True, read_only=True)
    final_product_name = serializers.CharField(source='final_product.name', read_only=True)

    class Meta:
        model = Recipe
        fields = [
            'id',
            'name',
            'description',
            'final_product',
            'final_product_name',
            'ingredients',
            'created_at',
            'updated_at',
        ]


class RecipeWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    final_product_id = serializers.IntegerField()
    ingredients = IngredientInputSerializer(many=True)

    def create(self, validated_data):
        return recipe_service.create_recipe(user=_request_user(self), **validated_data)


class RecipeUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    ingredients = IngredientInputSerializer(many=True, required=False)

    def update(self, instance, validated_data):
        return recipe_service.update_recipe(instance, **validated_data)


class ProductionIngredientSerializer(serializers.ModelSerializer):
    item_id = serializers.IntegerField(read_only=True)
    item_name = serializers.CharField(source='item.name', read_only=True)
    available_quantity = serializers.DecimalField(
        source='item.quantity', max_digits=12, decimal_places=2, read_only=True
    )

    class Meta:
        model = ProductionIngredient
        fields = ['id', 'item_id', 'item_name', 'quantity', 'available_quantity', 'is_from_recipe']


class ProductionItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductionItem
        fields = ['id', 'serial_number', 'cost_price', 'is_sold', 'created_at']


class ProductionSerializer(serializers.ModelSerializer):
    recipe_name = serializers.CharField(source='recipe.name', read_only=True)
    final_product = serializers.IntegerField(source='recipe.final_product_id', read_only=True)
    final_product_name = serializers.CharField(source='recipe.final_product.name', read_only=True)
    status_label = serializers.CharField(source='get_status_display', read_only=True)
    ingredients = ProductionIngredientSerializer(many=True, read_only=True)
    items = ProductionItemSerializer(many=True, read_only=True)

    class Meta:
        model = Production
        fields = [
            'id',
            'batch_number',
            'recipe',
            'recipe_name',
            'final_product',
            'final_product_name',
            'quantity',
            'status',
            'status_label',
            'notes',
            'start_date',
            'completion_date',
            'total_cost',
            'cost_per_unit',
            'ingredients',
            'items',
            'created_at',
        ]


class ProductionCreateSerializer(serializers.Serializer):
    recipe_id = serializers.IntegerField()
    batch_number = serializers.CharField(max_length=50)
    quantity = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ProductionNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(allow_blank=True)


class ProductionIngredientsSerializer(serializers.Serializer):
    ingredients = IngredientInputSerializer(many=True, allow_empty=False)


class ProductionCompleteSerializer(serializers.Serializer):
    serial_numbers = serializers.ListField(
        child=serializers.CharField(allow_blank=True, trim_whitespace=False),
        allow_empty=False,
    )
