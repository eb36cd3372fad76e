from matatupay.models.user import User
from matatupay.models.matatu import Matatu
from matatupay.models.route import Route, FareRule
from matatupay.models.trip import Trip
from matatupay.models.revenue_split import RevenueSplit
from matatupay.models.payment import Payment
from matatupay.models.alert import Alert
from matatupay.models.provider_callback import ProviderCallback

__all__ = [
    "User",
    "Matatu",
    "Route",
    "FareRule",
    "Trip",
    "RevenueSplit",
    "Payment",
    "Alert",
    "ProviderCallback",
]
