from django.core.management.base import BaseCommand

from api.models import Account, Customer, Supplier
from api.services.ledger import recalculate_balance


class Command(BaseCommand):
    help = 'Rebuild account, supplier and customer balances from their ledger entries.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--only',
            choices=['accounts', 'suppliers', 'customers'],
            help='Limit the run to one kind of ledger holder.',
        )

    def handle(self, *args, **options):
        models = {'accounts': Account, 'suppliers': Supplier, 'customers': Customer}
        only = options.get('only')
        if only:
            models = {only: models[only]}

        for model in models.values():
            for entity in model.objects.order_by('pk'):
                before = entity.current_balance
                after = recalculate_balance(entity)
                message = f'{model.__name__} {entity.pk} balance {before} -> {after}'
                if before != after:
                    self.stdout.write(self.style.WARNING(message))
                else:
                    self.stdout.write(self.style.SUCCESS(message))
