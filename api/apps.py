import atexit

from django.apps import AppConfig


class ApiConfig(AppConfig):
    name = 'api'

    def ready(self):
        from .db import close_store, connect_store
        from .firebase_config import initialize_firebase

        initialize_firebase()
        connect_store()
        atexit.register(close_store)
