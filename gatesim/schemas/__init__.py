from .token import Token, TokenData
from .user import (
    UserBase,
    UserCreate,
    UserUpdate,
    User
)
from .catalog import (
    CatalogOffer,
    CanonicalPackage,
    PricingConfig,
    PackageFilter,
    PackageSearchResponse,
    DurationBucket,
    SortOrder
)
from .order import (
    OrderStatus,
    OrderItem,
    OrderBase,
    OrderCreate,
    OrderCreateInternal,
    OrderUpdate,
    Order
)
from .payment import (
    Deeplink,
    InvoiceCreateRequest,
    Invoice,
    InvoiceInDB,
    PaymentStatus,
    WebhookResult
)
from .settings import PricingSettings, PricingSettingsUpdate
