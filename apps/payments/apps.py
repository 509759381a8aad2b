from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.payments"

    def ready(self) -> None:
        from shared.infrastructure.encryption import get_card_vault

        from .strategies import configure_charging_strategy

        # Both fail loudly at startup rather than on the first payment.
        get_card_vault()
        configure_charging_strategy()
