import sys

from django.core.management import call_command
from django.core.management.base import BaseCommand, CommandError
from pymongo.errors import PyMongoError

from databyter import database

MIN_PORT = 1025
MAX_PORT = 65535
INVALID_PORT_EXIT_CODE = 2


class Command(BaseCommand):
    help = 'Starts the databyter REST service'

    def add_arguments(self, parser):
        parser.add_argument(
            '-i', '--iface', default='0.0.0.0',
            help='The interface the service will listen to for requests'
        )
        parser.add_argument(
            '-p', '--port', type=int, default=8000,
            help='The port number the service will listen to for requests'
        )

    def handle(self, *args, **options):
        iface = options['iface']
        port = options['port']

        if port < MIN_PORT or port > MAX_PORT:
            self.stderr.write(f"Invalid port (must be between {MIN_PORT} and {MAX_PORT}): {port}")
            self.create_parser('manage.py', 'serve').print_usage(sys.stderr)
            sys.exit(INVALID_PORT_EXIT_CODE)

        try:
            database.ensure_indexes()
        except PyMongoError as e:
            raise CommandError(f"Cannot prepare MongoDB indexes: {e}")

        address = f"[{iface}]:{port}" if ':' in iface else f"{iface}:{port}"
        self.stdout.write(self.style.SUCCESS(f"Server listening: http://{address}"))
        call_command('runserver', address, use_reloader=False)
